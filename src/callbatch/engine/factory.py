"""
Calling engine factory.

Single source of truth for configuration: Settings (Pydantic Settings).
"""

from __future__ import annotations

from callbatch.config import Settings, get_settings
from callbatch.engine.http_runner import HttpCallingEngine
from callbatch.engine.interface import CallingEngine
from callbatch.engine.mock_runner import MockCallingEngine
from callbatch.shared.logging import get_logger

logger = get_logger(__name__)


def _mask(s: str, keep: int = 6) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"{s[:keep]}***"


def get_engine(settings: Settings | None = None) -> CallingEngine:
    """Create the calling engine selected by settings.engine_provider."""
    cfg = settings or get_settings()

    logger.info(
        "Engine config resolved",
        extra={
            "engine_provider": cfg.engine_provider,
            "engine_base_url": cfg.engine_base_url,
            "engine_api_key": _mask(cfg.engine_api_key),
            "concurrency": cfg.concurrency,
            "job_timeout_seconds": cfg.job_timeout_seconds,
        },
    )

    if cfg.engine_provider == "http":
        return HttpCallingEngine(
            base_url=cfg.engine_base_url,
            api_key=cfg.engine_api_key,
            timeout=cfg.engine_http_timeout_seconds,
            job_timeout_seconds=cfg.job_timeout_seconds,
        )

    if cfg.engine_provider == "mock":
        return MockCallingEngine(job_timeout_seconds=cfg.job_timeout_seconds)

    raise ValueError(f"Unsupported engine provider: {cfg.engine_provider}")
