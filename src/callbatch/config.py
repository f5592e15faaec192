"""
Application configuration with environment-driven settings.

Every field has a default so a bare `callbatch input.csv` run needs no
environment at all.
"""

from functools import lru_cache
import os
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


EngineProvider = Literal["http", "mock"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CALLBATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Engine
    engine_provider: EngineProvider = Field(
        default="http",
        description="Conversation runner backing the job queue: http|mock",
    )
    engine_base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the conversational calling platform API",
    )
    engine_api_key: str = Field(
        default="",
        description="Bearer token for the calling platform API",
    )
    engine_http_timeout_seconds: float = Field(default=30.0, gt=0)
    project_path: str = Field(
        default="./app",
        description="Application project deployed to the engine",
    )
    group_name: str = Field(default="Default")

    # Queue
    concurrency: int = Field(default=10, ge=1, le=100)
    job_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Execution deadline per job; expiry emits the timeout event",
    )

    # Per-conversation pass-through values
    noise_volume: float = Field(default=0.1, ge=0.0, le=1.0)
    sip_config: str = Field(default="default")
    tts_profile: str = Field(default="default")

    # Shutdown
    shutdown_grace_seconds: float = Field(default=10.0, ge=0)

    # CSV input/output
    csv_delimiter: str = Field(default=",")
    csv_quotechar: str = Field(default='"')
    csv_encoding: str = Field(default="utf-8-sig")

    @field_validator("csv_delimiter", "csv_quotechar")
    @classmethod
    def validate_single_char(cls, v: str) -> str:
        """csv module dialects accept one-character delimiters only."""
        if len(v) != 1:
            raise ValueError("must be a single character")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return str(v).strip().upper()


@lru_cache
def _get_settings_cached() -> Settings:
    return Settings()


def get_settings() -> Settings:
    # Tests monkeypatch the environment between cases; never hand them a
    # frozen instance.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return Settings()
    return _get_settings_cached()
