from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    api_base_url: str = os.getenv(
        "API_BASE_URL", "https://ark.cn-beijing.volces.com/api/v3"
    )
    ark_api_key: Optional[str] = os.getenv("ARK_API_KEY")
    model_name: Optional[str] = os.getenv("MODEL_NAME")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    max_history_length: int = int(os.getenv("MAX_HISTORY_LENGTH", "10"))
    memory_file: str = os.getenv("MEMORY_FILE", "data/long_term_memory.json")
    system_prompt: str = os.getenv("SYSTEM_PROMPT", "你是一个专业的前端导师。")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "30"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
