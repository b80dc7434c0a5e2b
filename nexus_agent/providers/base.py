"""Provider 抽象接口。

上层 AgentEngine 不直接依赖 HTTP 细节，而是依赖此协议：

- 负责：将 ChatRequest 转成具体 API 请求，并把响应 JSON 解析为 ChatResult。
- 负责：把 401/403 映射为 AuthError，把其他非 2xx 响应映射为 ApiError。

测试里可以用一个实现了 chat() 的脚本化对象替换真实 Provider。
"""

from typing import Protocol
from nexus_agent.domain.models import ChatRequest, ChatResult


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat(req): 执行一次非流式补全调用，返回统一的 ChatResult。
    """

    name: str

    def chat(self, req: ChatRequest) -> ChatResult:
        ...
