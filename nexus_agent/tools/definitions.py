"""工具数据结构与注册表。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDef / ToolParam）。
- 在 AgentEngine 中保存和执行模型触发的工具调用（ToolCall / ToolOutcome / ToolResult）。

注册表本身只有契约，没有行为；行为见 executor 模块。
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from nexus_agent.domain.models import GroundingSource


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]


@dataclass
class ToolCall:
    """模型发起的一次工具调用请求。"""

    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass(frozen=True)
class ToolOutcome:
    """单个工具处理函数的返回值。

    ok 标记成功/失败；失败时 content 仍是给模型看的可读文本，
    只有追加回对话时才折叠成纯文本。
    """

    content: str
    ok: bool = True
    grounding: Optional[GroundingSource] = None
    image: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    """一次工具调用及其结果，按 call_id 与请求对应。"""

    call_id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    content: str = ""
    ok: bool = True
    grounding: Optional[GroundingSource] = None
    image: Optional[str] = None


def _string_param(name: str, description: str) -> ToolParam:
    return ToolParam(name=name, description=description, required=True, schema={"type": "string"})


def default_tool_defs() -> List[ToolDef]:
    return [
        ToolDef(
            name="save_to_memory",
            description=(
                "Saves a piece of information to the agent's long-term memory. Use this when the user "
                "asks you to remember something, or for important personal details (name, preferences)."
            ),
            params={
                "key": _string_param(
                    "key",
                    'A unique identifier key for this memory (e.g., "user_name", "favorite_color", '
                    '"project_deadline").',
                ),
                "value": _string_param("value", "The detailed information to store."),
            },
        ),
        ToolDef(
            name="read_from_memory",
            description=(
                "Retrieves a specific piece of information from memory using its key. Use this when you "
                "need to recall a specific detail you might have stored previously."
            ),
            params={
                "key": _string_param("key", "The key of the memory to retrieve."),
            },
        ),
        ToolDef(
            name="calculate_expression",
            description=(
                "Evaluates a mathematical expression. Use this for any math queries, budgets, "
                "conversions, or complex calculations."
            ),
            params={
                "expression": _string_param(
                    "expression",
                    'The mathematical expression to evaluate (e.g., "1200 * 0.15", "(500 + 200) / 12").',
                ),
            },
        ),
        ToolDef(
            name="pika_generate_image",
            description=(
                "Generates an image based on a text description. Use this whenever the user asks to "
                "create, generate, draw, or show an image. Also use this if the user explicitly "
                'mentions "Pika".'
            ),
            params={
                "prompt": _string_param("prompt", "The visual description of the image to generate."),
            },
        ),
        ToolDef(
            name="web_search",
            description=(
                'Searches the web for information. Use this for "latest", "search", "find", '
                '"check online", "verify".'
            ),
            params={
                "query": _string_param("query", "The search query to find information about."),
            },
        ),
    ]


TOOL_NAMES = frozenset(tool.name for tool in default_tool_defs())
