"""
Pytest configuration and fixtures shared by the callbatch tests.
"""
from __future__ import annotations

import csv
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from typing import Any, Callable

import pytest

from callbatch.config import Settings
from callbatch.engine.interface import EventHandler, JobQueue, QueueEvent


class FakeQueue(JobQueue):
    """Records pushes and handlers; tests fire events by hand."""

    def __init__(self) -> None:
        self.pushed: list[str] = []
        self.handlers: dict[QueueEvent, EventHandler] = {}

    def push(self, key: str) -> None:
        self.pushed.append(key)

    def on(self, event: QueueEvent | str, handler: EventHandler) -> None:
        self.handlers[QueueEvent(event)] = handler


class FakeApplication:
    def __init__(self) -> None:
        self.queue = FakeQueue()
        self.started_with: int | None = None
        self.stopped = False

    async def start(self, concurrency: int) -> None:
        self.started_with = concurrency

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the developer's environment."""
    return Settings(
        log_level="DEBUG",
        log_format="json",
        engine_provider="mock",
        engine_base_url="https://engine.example.com",
        engine_api_key="test-api-key-123456",
        project_path="./app",
        group_name="Default",
        concurrency=10,
        job_timeout_seconds=5.0,
        noise_volume=0.1,
        sip_config="default",
        tts_profile="default",
        shutdown_grace_seconds=10.0,
    )


@pytest.fixture
def fake_application() -> FakeApplication:
    return FakeApplication()


@pytest.fixture
def key_factory() -> Callable[[], str]:
    """Deterministic job keys: job-1, job-2, ..."""
    counter = count(1)
    return lambda: f"job-{next(counter)}"


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock advancing one second per call."""
    start = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write rows (first row = header) to a CSV file under tmp_path."""

    def _write(rows: list[list[str]], name: str = "calls.csv", delimiter: str = ",") -> Path:
        path = tmp_path / name
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, delimiter=delimiter)
            writer.writerows(rows)
        return path

    return _write


@pytest.fixture
def read_report() -> Callable[[Path], list[dict[str, Any]]]:
    """Parse a written report into one dict per row."""

    def _read(path: Path) -> list[dict[str, Any]]:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return list(csv.DictReader(handle))

    return _read

