"""Agent 回合循环。

一次 run() 把一条用户消息驱动到最终回答：
构造消息 -> 调用补全接口 -> 若有工具调用则依次执行并把结果追加回对话 -> 重复，
最多 max_tool_rounds 轮。鉴权失败与接口错误直接抛给调用方；
工具失败由 ToolExecutor 吸收为结果文本，不会中断回合。
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4
import logging
import time

from nexus_agent.config.settings import settings
from nexus_agent.domain.exceptions import AuthError, BusinessError
from nexus_agent.domain.models import ChatMessage, ChatRequest, GroundingSource, TurnOutcome
from nexus_agent.infrastructure.logging.logger import logger
from nexus_agent.prompts import load_system_prompt
from nexus_agent.providers.base import ProviderClient
from nexus_agent.tools.definitions import ToolDef, ToolResult, default_tool_defs
from nexus_agent.tools.executor import ToolExecutor


ToolStartHook = Callable[[str], None]
ToolEndHook = Callable[[], None]

HISTORY_ROLES = ("system", "user", "assistant")


class TurnState(str, Enum):
    BUILD_REQUEST = "build_request"
    AWAIT_COMPLETION = "await_completion"
    DISPATCH_TOOLS = "dispatch_tools"
    DONE = "done"
    ERROR = "error"


@dataclass
class AgentConfig:
    provider: str = "openrouter"
    model: str = "nexus-chat"
    max_tool_rounds: int = 5  # 超过后直接返回已累积的结果
    temperature: Optional[float] = None


class AgentEngine:
    def __init__(
        self,
        provider_client: ProviderClient,
        tool_executor: ToolExecutor,
        tool_defs: Optional[List[ToolDef]] = None,
        config: Optional[AgentConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._provider_client = provider_client
        self._tool_executor = tool_executor
        self._tool_defs = tool_defs if tool_defs is not None else default_tool_defs()
        self._config = config or AgentConfig(
            provider=provider_client.name,
            model=settings.default_model,
            max_tool_rounds=settings.max_tool_rounds,
        )
        self._clock = clock or datetime.now

    def run(
        self,
        history: Sequence[ChatMessage],
        user_message: str,
        credential: Optional[str],
        on_tool_start: Optional[ToolStartHook] = None,
        on_tool_end: Optional[ToolEndHook] = None,
    ) -> TurnOutcome:
        """执行一次完整的回合。

        Args:
            history: 之前的对话消息（is_error 的消息会被过滤）
            user_message: 本次用户输入
            credential: OpenRouter API Key
            on_tool_start: 每个工具执行前回调，参数为工具名
            on_tool_end: 每个工具执行完成后回调

        Returns:
            TurnOutcome，包含拼接后的文本、工具调用记录、引用来源与生成图片

        Raises:
            AuthError: 凭证缺失或被拒绝
            ApiError: 补全接口返回其他错误
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "provider": self._config.provider,
            "model": self._config.model,
        }
        if not credential or not credential.strip():
            self._log(logging.WARNING, "Missing credential", log_ctx)
            raise AuthError(
                code="MISSING_API_KEY",
                message="API Key is missing. Please enter your OpenRouter API Key in settings.",
                http_status=401,
            )

        conversation = self._build_messages(history, user_message)
        text_parts: List[str] = []
        tool_results: List[ToolResult] = []
        grounding: List[GroundingSource] = []
        images: List[str] = []
        max_rounds = self._config.max_tool_rounds
        round_num = 0
        exhausted = False
        state = TurnState.BUILD_REQUEST

        while state is not TurnState.DONE:
            if round_num >= max_rounds:
                exhausted = True
                self._log(
                    logging.WARNING,
                    "Reached max tool rounds",
                    log_ctx,
                    max_rounds=max_rounds,
                    tool_call_count=len(tool_results),
                )
                break
            round_num += 1
            conversation[0] = self._system_message()
            req = ChatRequest(
                provider=self._config.provider,
                model=self._config.model,
                messages=list(conversation),
                tools=self._tool_defs,
                temperature=self._config.temperature,
                api_key=credential,
            )
            state = self._transition(state, TurnState.AWAIT_COMPLETION, log_ctx, round=round_num)
            try:
                result = self._provider_client.chat(req)
            except BusinessError as e:
                self._transition(state, TurnState.ERROR, log_ctx, round=round_num, code=e.code)
                raise

            assistant_msg = result.choices[0].message
            if assistant_msg.content:
                text_parts.append(assistant_msg.content)
            conversation.append(assistant_msg)

            if not assistant_msg.tool_calls:
                state = self._transition(state, TurnState.DONE, log_ctx, round=round_num)
                continue

            state = self._transition(
                state,
                TurnState.DISPATCH_TOOLS,
                log_ctx,
                round=round_num,
                call_count=len(assistant_msg.tool_calls),
            )
            for tool_call in assistant_msg.tool_calls:
                if on_tool_start:
                    on_tool_start(tool_call.name)
                self._log(
                    logging.INFO,
                    "Tool call received",
                    log_ctx,
                    tool_name=tool_call.name,
                    tool_call_id=tool_call.id,
                    tool_args=tool_call.arguments,
                )
                tool_result = self._tool_executor.execute(tool_call)
                self._log(
                    logging.INFO if tool_result.ok else logging.WARNING,
                    "Tool execution finished",
                    log_ctx,
                    tool_call_id=tool_call.id,
                    ok=tool_result.ok,
                    result_preview=tool_result.content[:200],
                )
                conversation.append(
                    ChatMessage(
                        role="tool",
                        content=tool_result.content,
                        tool_call_id=tool_call.id,
                        name=tool_call.name,
                    )
                )
                tool_results.append(tool_result)
                if tool_result.grounding:
                    grounding.append(tool_result.grounding)
                if tool_result.image:
                    images.append(tool_result.image)
                if on_tool_end:
                    on_tool_end()
            state = self._transition(state, TurnState.BUILD_REQUEST, log_ctx, round=round_num)

        self._log(
            logging.INFO,
            "Completed agent turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            rounds=round_num,
            exhausted=exhausted,
        )
        return TurnOutcome(
            text="".join(text_parts),
            tool_calls=tuple(tool_results),
            grounding_sources=tuple(grounding),
            generated_images=tuple(images),
            rounds=round_num,
            exhausted=exhausted,
        )

    def _system_message(self) -> ChatMessage:
        return ChatMessage(role="system", content=load_system_prompt(self._clock()))

    def _build_messages(self, history: Sequence[ChatMessage], user_message: str) -> List[ChatMessage]:
        """system 指令在首位，其后是历史消息（去掉错误消息与工具消息），最后是本次用户输入。"""
        messages = [self._system_message()]
        for msg in history:
            if msg.is_error or msg.role not in HISTORY_ROLES:
                continue
            messages.append(ChatMessage(role=msg.role, content=msg.content))
        messages.append(ChatMessage(role="user", content=user_message))
        return messages

    def _transition(
        self,
        current: TurnState,
        target: TurnState,
        log_ctx: Dict[str, Any],
        **fields: Any,
    ) -> TurnState:
        level = logging.ERROR if target is TurnState.ERROR else logging.DEBUG
        self._log(level, "Turn state transition", log_ctx, from_state=current.value, to_state=target.value, **fields)
        return target

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
