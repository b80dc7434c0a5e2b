from typing import Callable, Dict, Any, List, Optional
import random
from urllib.parse import quote

from nexus_agent.config.settings import settings
from nexus_agent.domain.exceptions import BusinessError
from nexus_agent.domain.memory import MemoryStore
from nexus_agent.domain.models import GroundingSource
from nexus_agent.infrastructure.logging.logger import logger
from .calculator import evaluate_outcome
from .definitions import ToolCall, ToolOutcome, ToolResult
from .web_search import URI_COMPONENT_SAFE, WikipediaSearchClient, article_uri


ToolFunc = Callable[[Dict[str, Any]], ToolOutcome]

NOTHING_STORED = "Nothing found in memory."
KEY_NOT_FOUND = "Key not found in memory."
NO_SEARCH_RESULTS = "No results found for this query."
SEARCH_FAILED = "Error performing web search."
SEARCH_SOURCE_TITLE = "Wikipedia Search"
MAX_IMAGE_SEED = 2**31 - 1


class ToolExecutor:
    """按工具名分发到处理函数。

    处理函数的失败不会向上抛出：未注册的工具返回空文本，
    处理函数内部的异常被折叠成 "Error: ..." 文本并标记 ok=False。
    """

    def __init__(self, tools: Dict[str, ToolFunc]):
        self._tools = tools

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def dispatch(self, name: str, arguments: Dict[str, Any]) -> ToolOutcome:
        func = self._tools.get(name)
        if not func:
            logger.warning("Unknown tool requested", extra={"extra": {"tool_name": name}})
            return ToolOutcome(content="", ok=False)
        try:
            return func(arguments)
        except Exception as e:
            logger.error(
                "Tool handler failed",
                extra={"extra": {"tool_name": name, "error": str(e)}},
            )
            return ToolOutcome(content=f"Error: {e}", ok=False)

    def execute(self, call: ToolCall) -> ToolResult:
        outcome = self.dispatch(call.name, call.arguments)
        return ToolResult(
            call_id=call.id,
            name=call.name,
            arguments=dict(call.arguments),
            content=outcome.content,
            ok=outcome.ok,
            grounding=outcome.grounding,
            image=outcome.image,
        )


def _text_arg(args: Dict[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _missing(name: str) -> ToolOutcome:
    return ToolOutcome(content=f"Error: missing '{name}' argument", ok=False)


def _make_save_memory_tool(store: MemoryStore) -> ToolFunc:
    def _run(args: Dict[str, Any]) -> ToolOutcome:
        key = _text_arg(args, "key")
        if not key:
            return _missing("key")
        value = _text_arg(args, "value") or ""
        store.write_memory(key, value)
        return ToolOutcome(content=f"Saved to memory: {key} = {value}")

    return _run


def _make_read_memory_tool(store: MemoryStore) -> ToolFunc:
    def _run(args: Dict[str, Any]) -> ToolOutcome:
        if len(store) == 0:
            return ToolOutcome(content=NOTHING_STORED)
        key = _text_arg(args, "key")
        value = store.read_memory(key) if key else None
        if value is None:
            return ToolOutcome(content=KEY_NOT_FOUND)
        return ToolOutcome(content=value)

    return _run


def _make_calculate_tool() -> ToolFunc:
    def _run(args: Dict[str, Any]) -> ToolOutcome:
        return evaluate_outcome(_text_arg(args, "expression") or "")

    return _run


def _make_web_search_tool(client: WikipediaSearchClient) -> ToolFunc:
    def _run(args: Dict[str, Any]) -> ToolOutcome:
        query = (_text_arg(args, "query") or "").strip()
        if not query:
            return _missing("query")
        # 引用来源与搜索是否成功无关
        source = GroundingSource(title=SEARCH_SOURCE_TITLE, uri=article_uri(query))
        try:
            hits = client.search(query)
        except BusinessError as e:
            logger.warning(
                "Web search failed",
                extra={"extra": {"query": query, "code": e.code, "error": e.message}},
            )
            return ToolOutcome(content=SEARCH_FAILED, ok=False, grounding=source)
        if not hits:
            return ToolOutcome(content=NO_SEARCH_RESULTS, grounding=source)
        text = "\n\n".join(f"Title: {hit.title}\nSnippet: {hit.snippet}" for hit in hits)
        return ToolOutcome(content=text, grounding=source)

    return _run


def _make_generate_image_tool(endpoint: str, rng: random.Random) -> ToolFunc:
    last_seed: Optional[int] = None

    def _run(args: Dict[str, Any]) -> ToolOutcome:
        nonlocal last_seed
        prompt = _text_arg(args, "prompt")
        if not prompt:
            return _missing("prompt")
        seed = rng.randint(0, MAX_IMAGE_SEED)
        while seed == last_seed:
            seed = rng.randint(0, MAX_IMAGE_SEED)
        last_seed = seed
        url = f"{endpoint.rstrip('/')}/{quote(prompt, safe=URI_COMPONENT_SAFE)}?seed={seed}&nologo=true"
        return ToolOutcome(content=f"Image generated successfully: {url}", image=url)

    return _run


def default_tools(
    store: MemoryStore,
    search_client: Optional[WikipediaSearchClient] = None,
    image_endpoint: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, ToolFunc]:
    return {
        "save_to_memory": _make_save_memory_tool(store),
        "read_from_memory": _make_read_memory_tool(store),
        "calculate_expression": _make_calculate_tool(),
        "pika_generate_image": _make_generate_image_tool(
            image_endpoint or settings.image_endpoint,
            rng or random.Random(),
        ),
        "web_search": _make_web_search_tool(search_client or WikipediaSearchClient(settings)),
    }
