"""统一的对话与结果数据模型。

本模块定义了 Agent 内部共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant/tool）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。
- GroundingSource: 回答引用的外部来源（标题 + URI）。
- TurnOutcome: 一次用户请求（可能跨多轮工具调用）的最终结果。

Provider 适配器（如 OpenRouterClient）只依赖这些模型，
并负责在 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal, Optional, List, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from nexus_agent.tools.definitions import ToolCall, ToolDef, ToolResult


# LLM 消息角色类型（与 OpenAI 风格接口的 role 字段对应）
Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant/tool。
    - content: 纯文本内容。
    - tool_calls: 当 role 为 "assistant" 且模型触发工具调用时，
      这里保存模型发起的工具调用列表。
    - tool_call_id: 当 role 为 "tool" 时，用于关联某一次工具调用。
    - name: 当 role 为 "tool" 时为工具名。
    - is_error: UI 层标记的错误消息，构造上下文时会被过滤掉。
    """

    role: Role
    content: str
    tool_calls: Optional[List["ToolCall"]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    is_error: bool = False


@dataclass
class ChatRequest:
    """一次完整的聊天请求。

    AgentEngine 每一轮都会生成一个 ChatRequest，再交给具体 ProviderClient。
    Provider 适配层负责把本结构转换成 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "openrouter"
    model: str  # 逻辑模型名，如 "nexus-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    tools: Optional[List["ToolDef"]] = None
    temperature: Optional[float] = None
    # 本次请求使用的凭证；为空时 Provider 退回到配置中的 key
    api_key: Optional[str] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（只使用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次补全调用的结果。

    - provider: 逻辑 Provider 名。
    - model: 逻辑模型名。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass(frozen=True)
class GroundingSource:
    """回答引用的外部来源。"""

    title: str
    uri: str


@dataclass(frozen=True)
class TurnOutcome:
    """一次 AgentEngine.run 的最终结果，返回后不可变。

    - text: 所有轮次中助手文本内容的拼接。
    - tool_calls: 按执行顺序记录的工具调用结果。
    - grounding_sources: 收集到的引用来源。
    - generated_images: 生成的图片地址。
    - rounds: 实际与补全接口交互的轮数。
    - exhausted: 达到最大轮数时仍有未完成的工具调用。
    """

    text: str
    tool_calls: Tuple["ToolResult", ...] = ()
    grounding_sources: Tuple[GroundingSource, ...] = ()
    generated_images: Tuple[str, ...] = ()
    rounds: int = 0
    exhausted: bool = False
