"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 模板，
并把当前时间填进去，用于构造 ChatMessage(role="system")。
"""

from datetime import datetime
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


def format_current_time(now: datetime) -> str:
    """格式化为 "Monday, October 19, 2026 at 3:04:05 PM" 的形式。"""

    hour = now.hour % 12 or 12
    return f"{now:%A}, {now:%B} {now.day}, {now.year} at {hour}:{now:%M:%S} {now:%p}"


def load_system_prompt(now: datetime, locale: str = "en") -> str:
    """加载系统提示词文本并填入当前时间。"""

    fname = PROMPTS_DIR / locale / "nexus_system.md"
    template = fname.read_text(encoding="utf-8")
    return template.replace("{current_time}", format_current_time(now)).strip()
