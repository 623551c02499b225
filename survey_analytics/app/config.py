from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _env_int(key: str, default: int) -> int:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    v = _env_str(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    v = _env_str(key)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    # Core paths
    db_path: str
    prompts_dir: Optional[str]

    # Logging
    log_level: str
    log_json: bool

    # LLM access
    analysis_model: str
    builder_model: str
    llm_base_url: Optional[str]
    openai_api_key: Optional[str]
    temperature: float

    # Analysis behaviour
    language: str
    retry_max: int
    retry_initial_delay: float

    @staticmethod
    def from_env() -> "Settings":
        # Read configuration from environment variables (and a local .env file).
        load_dotenv()

        db_path = _env_str("APP_DB_PATH", "data/app.db") or "data/app.db"
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        language = (_env_str("APP_LANGUAGE", "ko") or "ko").lower()
        if language not in {"ko", "en"}:
            language = "ko"

        return Settings(
            db_path=db_path,
            prompts_dir=_env_str("APP_PROMPTS_DIR"),

            log_level=_env_str("APP_LOG_LEVEL", "INFO") or "INFO",
            log_json=_env_bool("APP_LOG_JSON", True),

            analysis_model=_env_str("APP_MODEL_ANALYSIS", "gpt-4.1-mini") or "gpt-4.1-mini",
            builder_model=_env_str("APP_MODEL_BUILDER", "gpt-4.1-mini") or "gpt-4.1-mini",
            llm_base_url=_env_str("APP_LLM_BASE_URL"),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            temperature=_env_float("APP_LLM_TEMPERATURE", 0.0),

            language=language,
            retry_max=max(0, _env_int("APP_RETRY_MAX", 3)),
            retry_initial_delay=max(0.0, _env_float("APP_RETRY_INITIAL_DELAY", 2.0)),
        )
