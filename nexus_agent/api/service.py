"""对外 API 服务模块。

提供简化的函数接口供上层（聊天界面）调用：
把界面侧的消息字典转换为 ChatMessage，运行一次回合，
再把结果或错误整理成可直接渲染的助手消息字典。
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from nexus_agent.agents.turn_loop import AgentEngine, ToolEndHook, ToolStartHook
from nexus_agent.config.settings import settings
from nexus_agent.domain.exceptions import AuthError, BusinessError
from nexus_agent.domain.memory import MemoryStore
from nexus_agent.domain.models import ChatMessage
from nexus_agent.infrastructure.logging.logger import logger
from nexus_agent.infrastructure.storage.memory_store import JsonMemoryStore
from nexus_agent.providers import create_provider
from nexus_agent.tools.executor import ToolExecutor, default_tools


INVALID_KEY_MESSAGE = "Error: Invalid API Key. Please enter a valid OpenRouter API Key."
CONNECTION_ERROR_MESSAGE = "I encountered an error connecting to OpenRouter."
NEW_CHAT_TITLE = "New Chat"
TITLE_MAX_CHARS = 30

# 界面侧使用 "model" 表示助手
_ROLE_ALIASES = {"model": "assistant", "ai": "assistant"}

_store: Optional[MemoryStore] = None
_engine: Optional[AgentEngine] = None


@dataclass
class ToolStatus:
    is_calculating: bool = False
    is_searching: bool = False
    is_accessing_memory: bool = False
    is_generating_image: bool = False


def get_memory_store() -> MemoryStore:
    """获取默认的记忆存储（单例）。"""
    global _store
    if _store is None:
        _store = JsonMemoryStore(root=settings.storage_root)
    return _store


def get_default_engine() -> AgentEngine:
    """获取默认的 AgentEngine 实例（单例）。"""
    global _engine
    if _engine is None:
        executor = ToolExecutor(default_tools(get_memory_store()))
        _engine = AgentEngine(provider_client=create_provider(), tool_executor=executor)
    return _engine


def to_chat_messages(history: Sequence[Mapping[str, Any]]) -> List[ChatMessage]:
    messages: List[ChatMessage] = []
    for item in history:
        role = str(item.get("role") or "user").lower()
        messages.append(
            ChatMessage(
                role=_ROLE_ALIASES.get(role, role),
                content=str(item.get("content") or ""),
                is_error=bool(item.get("is_error") or item.get("isError")),
            )
        )
    return messages


def run_chat(
    user_input: str,
    history: Sequence[Mapping[str, Any]] = (),
    credential: Optional[str] = None,
    on_tool_start: Optional[ToolStartHook] = None,
    on_tool_end: Optional[ToolEndHook] = None,
    engine: Optional[AgentEngine] = None,
) -> Dict[str, Any]:
    """运行一次聊天回合。

    Returns:
        助手消息字典：role、content、tool_calls、grounding_sources、image、is_error。
        鉴权失败时 is_error=True 且 auth_failed=True，调用方应重新索取 API Key。
    """
    agent = engine or get_default_engine()
    try:
        outcome = agent.run(
            to_chat_messages(history),
            user_input,
            credential if credential is not None else settings.openrouter_api_key,
            on_tool_start=on_tool_start,
            on_tool_end=on_tool_end,
        )
    except AuthError as e:
        logger.warning("Chat rejected: invalid credential", extra={"extra": {"code": e.code}})
        return {
            "role": "assistant",
            "content": INVALID_KEY_MESSAGE,
            "is_error": True,
            "auth_failed": True,
        }
    except BusinessError as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"code": e.code, "error": e.message}})
        text = CONNECTION_ERROR_MESSAGE
        if e.message:
            text += f" ({e.message})"
        return {"role": "assistant", "content": text, "is_error": True, "auth_failed": False}

    return {
        "role": "assistant",
        "content": outcome.text,
        "tool_calls": [
            {"tool_name": r.name, "args": r.arguments, "result": r.content, "ok": r.ok}
            for r in outcome.tool_calls
        ],
        "grounding_sources": [asdict(s) for s in outcome.grounding_sources],
        "image": outcome.generated_images[0] if outcome.generated_images else None,
        "is_error": False,
        "auth_failed": False,
    }


def session_title(messages: Sequence[Mapping[str, Any]]) -> str:
    """取第一条用户消息的前 30 个字符作为会话标题。"""
    for item in messages:
        if str(item.get("role") or "").lower() == "user":
            content = str(item.get("content") or "")
            if len(content) > TITLE_MAX_CHARS:
                return content[:TITLE_MAX_CHARS] + "..."
            return content
    return NEW_CHAT_TITLE


def tool_status(tool_name: str) -> ToolStatus:
    """根据正在执行的工具名生成侧边栏状态。"""
    return ToolStatus(
        is_calculating="calculate" in tool_name,
        is_searching="search" in tool_name,
        is_accessing_memory="memory" in tool_name,
        is_generating_image="pika" in tool_name or "image" in tool_name,
    )


def list_memory(store: Optional[MemoryStore] = None) -> List[Dict[str, str]]:
    """列出所有记忆条目。"""
    items = (store if store is not None else get_memory_store()).items()
    return [{"key": k, "value": v} for k, v in items.items()]


def clear_memory(store: Optional[MemoryStore] = None) -> None:
    (store if store is not None else get_memory_store()).clear()
