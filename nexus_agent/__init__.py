"""Nexus Agent 顶层包。

该包提供聊天 Agent 的核心实现：配置加载、领域模型、
OpenRouter Provider 适配、工具系统（记忆/计算器/搜索/图片生成）、
有轮数上限的回合循环以及面向界面的服务函数。
"""

from nexus_agent.agents.turn_loop import AgentConfig, AgentEngine
from nexus_agent.domain.models import TurnOutcome

__all__ = ["AgentConfig", "AgentEngine", "TurnOutcome"]
