from __future__ import annotations

from typing import Optional

from config.settings import Settings, get_settings


DEFAULT_SYSTEM_PROMPT = "你是一个专业的前端导师。"


def get_system_prompt(settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return settings.system_prompt or DEFAULT_SYSTEM_PROMPT
