"""OpenRouter Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenRouter chat/completions 的 HTTP 请求格式（OpenAI 风格工具调用）。
3. 调用 HTTP 接口并处理网络/鉴权/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult / ChatMessage 结构（含工具调用）。
"""

import httpx
import json
from typing import Any, Dict, List

from nexus_agent.domain.models import (
    ChatRequest,
    ChatResult,
    ChatMessage,
    ChatChoice,
    ChatUsage,
)
from nexus_agent.domain.exceptions import NetworkError, ApiError, AuthError, RateLimitError
from nexus_agent.infrastructure.logging.logger import logger
from nexus_agent.providers.registry import OPENROUTER_CONFIG, resolve_model
from nexus_agent.tools.definitions import ToolDef, ToolCall


AUTH_FAILURE_STATUSES = (401, 403)


class OpenRouterClient:
    """OpenRouter 客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - chat: 对外统一调用入口，返回 ChatResult。
    """

    name = "openrouter"

    def __init__(self, settings):
        # Settings 里包含 base_url、默认 api_key、超时等配置
        self._settings = settings

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式补全调用。

        步骤：
        1. 取凭证（请求优先，其次配置），缺失直接 AuthError。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并把 401/403、429、其他错误分别映射成对应异常。
        4. 使用统一的解析函数构造 ChatResult。
        """

        api_key = (req.api_key or getattr(self._settings, "openrouter_api_key", None) or "").strip()
        if not api_key:
            raise AuthError(code="MISSING_API_KEY", message="OpenRouter API key is missing", http_status=401)
        payload = self._build_payload(req)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "openrouter_base_url", None) or OPENROUTER_CONFIG.base_url
                resp = client.post(
                    f"{base.rstrip('/')}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                        "HTTP-Referer": getattr(self._settings, "app_url", "http://localhost"),
                        "X-Title": getattr(self._settings, "app_title", "Nexus AI Agent"),
                    },
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code in AUTH_FAILURE_STATUSES:
            logger.warning("Credential rejected", extra={"extra": {"status": resp.status_code}})
            raise AuthError(code="AUTH_ERROR", message="Invalid API key", http_status=resp.status_code)
        if resp.status_code >= 400:
            detail = self._error_detail(resp)
            logger.error(
                "OpenRouter request failed",
                extra={"extra": {"status": resp.status_code, "detail": detail}},
            )
            error_cls = RateLimitError if resp.status_code == 429 else ApiError
            raise error_cls(
                code="RATE_LIMIT" if resp.status_code == 429 else "API_ERROR",
                message=f"OpenRouter API Error: {detail}",
                http_status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="BAD_RESPONSE", message=f"OpenRouter API Error: {e}", http_status=502)
        return self._parse_response(data, req)

    def _build_payload(self, req: ChatRequest) -> dict:
        """将 ChatRequest 转成 OpenRouter 所需的请求 JSON。"""

        payload: Dict[str, Any] = {
            "model": resolve_model(OPENROUTER_CONFIG, req.model),
            "messages": [self._message_to_payload(m) for m in req.messages],
        }
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        return payload

    def _parse_response(self, data: Any, req: ChatRequest) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        raw_choices = data.get("choices") if isinstance(data, dict) else None
        if not raw_choices:
            raise ApiError(
                code="EMPTY_RESPONSE",
                message="OpenRouter API Error: response contained no choices",
                http_status=502,
            )
        choices: list[ChatChoice] = []
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") or {}
            cm = self._build_chat_message(msg)
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason")))
        usage_raw = data.get("usage") or {}
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _error_detail(resp: Any) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return getattr(resp, "reason_phrase", "") or f"HTTP {resp.status_code}"

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 OpenAI 风格的 function tool 描述。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            properties[name] = param.schema or {"type": "string"}
            if param.description:
                properties[name] = {
                    **properties[name],
                    "description": param.description,
                }
            if param.required:
                required.append(name)
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    def _build_chat_message(self, payload: Dict[str, Any]) -> ChatMessage:
        """将单条响应 message 转换为 ChatMessage，同时解析 tool_calls。"""

        tool_calls_raw = payload.get("tool_calls") or []
        tool_calls: List[ToolCall] = []
        for idx, call in enumerate(tool_calls_raw):
            func = call.get("function") or {}
            name = func.get("name") or call.get("name") or ""
            arguments = self._parse_arguments(func.get("arguments"), name)
            tool_calls.append(
                ToolCall(
                    id=call.get("id") or f"tool_call_{idx}",
                    name=name,
                    arguments=arguments,
                )
            )
        return ChatMessage(
            role=payload.get("role") or "assistant",
            content=payload.get("content") or "",
            tool_calls=tool_calls or None,
        )

    @staticmethod
    def _parse_arguments(raw: Any, tool_name: str = "") -> Dict[str, Any]:
        """解析工具调用的 arguments 字段。

        arguments 一般是 JSON 字符串；解析失败或不是对象时退化为空参数，
        不中断本轮对话。
        """

        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str) and raw.strip():
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
            logger.warning(
                "Failed to parse tool arguments",
                extra={"extra": {"tool_name": tool_name, "raw_arguments": raw[:200]}},
            )
        return {}

    def _message_to_payload(self, message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content or ""}
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        if message.name:
            payload["name"] = message.name
        return payload
