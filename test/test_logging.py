"""
Tests for structured logging.
"""

import json
import logging

import pytest

from callbatch.config import Settings
from callbatch.shared.logging import (
    StructuredFormatter,
    TextFormatter,
    job_key_var,
    log_with_context,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("callbatch.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_basic_fields(self) -> None:
        data = json.loads(StructuredFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "callbatch.test"
        assert data["message"] == "hello"
        assert "timestamp" in data

    def test_extra_fields_are_included(self) -> None:
        data = json.loads(StructuredFormatter().format(_record(key="job-1", reason="busy")))

        assert data["key"] == "job-1"
        assert data["reason"] == "busy"

    def test_colliding_extra_is_prefixed(self) -> None:
        data = json.loads(StructuredFormatter().format(_record(level="custom")))

        assert data["level"] == "INFO"
        assert data["extra_level"] == "custom"

    def test_job_key_context(self) -> None:
        token = job_key_var.set("job-7")
        try:
            data = json.loads(StructuredFormatter().format(_record()))
        finally:
            job_key_var.reset(token)

        assert data["job_key"] == "job-7"


class TestTextFormatter:
    def test_appends_job_key(self) -> None:
        token = job_key_var.set("job-7")
        try:
            line = TextFormatter().format(_record())
        finally:
            job_key_var.reset(token)

        assert line.endswith("[job=job-7]")
        assert "callbatch.test: hello" in line


class TestSetupLogging:
    def test_setup_is_idempotent(self) -> None:
        settings = Settings(log_level="WARNING", log_format="text")

        setup_logging(settings)
        setup_logging(settings)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_log_with_context(self, capsys) -> None:
        setup_logging(Settings(log_level="INFO", log_format="json"))
        logger = logging.getLogger("callbatch.test.context")

        log_with_context(logger, logging.INFO, "job resolved", key="job-1", job_status="Completed")

        data = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert data["message"] == "job resolved"
        assert data["job_status"] == "Completed"
