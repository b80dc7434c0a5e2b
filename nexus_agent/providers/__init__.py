"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供 OpenRouter 的具体实现 (openrouter_client)。
"""

from typing import Callable, Dict, Optional

from nexus_agent.config.settings import settings
from nexus_agent.domain.exceptions import BusinessError
from nexus_agent.providers.base import ProviderClient
from nexus_agent.providers.openrouter_client import OpenRouterClient
from nexus_agent.providers.registry import get_provider_config


_CLIENT_FACTORIES: Dict[str, Callable[..., ProviderClient]] = {
    "openrouter": OpenRouterClient,
}


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。

    名称先在 registry 中查找；未登记的 Provider 抛出 BusinessError(UNKNOWN_PROVIDER)。
    """

    provider_name = name or getattr(settings, "default_provider", "openrouter")
    try:
        cfg = get_provider_config(provider_name)
    except KeyError:
        raise BusinessError(
            code="UNKNOWN_PROVIDER",
            message=f"Unknown provider: {provider_name!r}",
            http_status=400,
        )
    return _CLIENT_FACTORIES[cfg.name](settings)
