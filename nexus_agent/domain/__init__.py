"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult / TurnOutcome 模型。
- memory: 键值记忆存储的 MemoryStore 协议。
- exceptions: 业务异常类型定义。
"""
