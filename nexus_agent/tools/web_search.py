"""web_search 工具使用的 Wikipedia 搜索客户端。

只读查询，最多返回 3 条结果；摘要中的 HTML 标记在返回前去除。
网络错误和非预期的响应结构都以 BusinessError 子类抛出，由 ToolExecutor 吸收。
"""

import re
from dataclasses import dataclass
from typing import Any, List
from urllib.parse import quote

import httpx

from nexus_agent.domain.exceptions import ApiError, NetworkError

MAX_SEARCH_RESULTS = 3
WIKI_ARTICLE_BASE = "https://en.wikipedia.org/wiki/"
# 与 encodeURIComponent 保持一致，这些字符不转义
URI_COMPONENT_SAFE = "!'()*~"

_TAG_PATTERN = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class SearchHit:
    title: str
    snippet: str


def strip_markup(text: str) -> str:
    return _TAG_PATTERN.sub("", text or "")


def article_uri(query: str) -> str:
    return WIKI_ARTICLE_BASE + quote(query, safe=URI_COMPONENT_SAFE)


class WikipediaSearchClient:
    def __init__(self, settings):
        self._settings = settings

    def search(self, query: str, limit: int = MAX_SEARCH_RESULTS) -> List[SearchHit]:
        params = {
            "action": "query",
            "list": "search",
            "prop": "info",
            "inprop": "url",
            "utf8": "",
            "format": "json",
            "origin": "*",
            "srlimit": limit,
            "srsearch": query,
        }
        try:
            with httpx.Client(timeout=self._settings.search_timeout, trust_env=False) as client:
                resp = client.get(self._settings.search_endpoint, params=params)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise ApiError(code="SEARCH_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="SEARCH_BAD_PAYLOAD", message=str(e))
        return self._parse_hits(data)[:limit]

    @staticmethod
    def _parse_hits(data: Any) -> List[SearchHit]:
        if not isinstance(data, dict):
            raise ApiError(code="SEARCH_BAD_PAYLOAD", message="search response is not an object")
        query_block = data.get("query")
        results = query_block.get("search") if isinstance(query_block, dict) else None
        if not isinstance(results, list):
            return []
        hits: List[SearchHit] = []
        for item in results:
            if not isinstance(item, dict):
                continue
            hits.append(
                SearchHit(
                    title=str(item.get("title") or ""),
                    snippet=strip_markup(str(item.get("snippet") or "")),
                )
            )
        return hits
