"""
config.py
=========

Runtime settings and logging setup shared by the Streamlit dashboard, the
command-line report and the Gemini parsing service.

Settings are read from the environment (and an optional ``.env`` file):

    API_KEY=...                 # or GEMINI_API_KEY
    GEMINI_MODEL=gemini-2.5-flash
    LLM_TIMEOUT_SECONDS=60
    LOG_LEVEL=INFO
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("API_KEY", "GEMINI_API_KEY"))
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    llm_timeout_seconds: float = 60.0
    llm_max_attempts: int = 3
    max_input_chars: int = 200_000
    log_level: str = "INFO"

    @property
    def generate_url(self) -> str:
        return f"{self.gemini_base_url.rstrip('/')}/models/{self.gemini_model}:generateContent"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a single stderr handler to the root logger.

    Streamlit re-executes the script on every interaction, so repeated calls
    only adjust the level instead of stacking handlers.
    """
    root = logging.getLogger()
    root.setLevel((level or get_settings().log_level).upper())
    if any(getattr(h, "_roster_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._roster_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
