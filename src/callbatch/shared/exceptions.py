"""
Error taxonomy shared across the batch caller.

Engine faults are defined next to the engine interface
(callbatch.engine.interface).
"""

from __future__ import annotations


class CallBatchError(Exception):
    """Base exception for callbatch errors."""


class RecordLoadError(CallBatchError, OSError):
    """Input file could not be opened or read."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class RecordParseError(CallBatchError, ValueError):
    """Input file contains a malformed row."""

    def __init__(self, message: str, line_number: int = 0) -> None:
        super().__init__(message)
        self.line_number = line_number


class DuplicateKeyError(CallBatchError, KeyError):
    """A job key was inserted twice into the correlation store."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Job key already registered: {self.key}"


class ReportWriteError(CallBatchError, OSError):
    """The report sink could not be opened or written."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
