"""
Job lifecycle models.

A job moves Enqueued -> Running -> Completed | Failed, or straight from
Enqueued to Rejected or Timeout. Terminal states are final.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class JobStatus(str, Enum):
    """Terminal status written to the report."""

    COMPLETED = "Completed"
    FAILED = "Failed"
    REJECTED = "Rejected"
    TIMEOUT = "Timeout"


class JobState(str, Enum):
    """Per-job lifecycle state."""

    ENQUEUED = "enqueued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobState.ENQUEUED, JobState.RUNNING)


_ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.ENQUEUED: frozenset({JobState.RUNNING, JobState.REJECTED, JobState.TIMEOUT}),
    JobState.RUNNING: frozenset({JobState.COMPLETED, JobState.FAILED, JobState.TIMEOUT}),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a job is moved along an edge the lifecycle does not have."""

    def __init__(self, current: JobState, target: JobState) -> None:
        super().__init__(f"Invalid job transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def transition(current: JobState, target: JobState) -> JobState:
    """Validate and return the next state."""
    if target not in _ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, target)
    return target


@dataclass(frozen=True)
class ConversationResult:
    """What a successfully executed conversation returns."""

    output: Mapping[str, Any] = field(default_factory=dict)
    recording_url: str | None = None


@dataclass(frozen=True)
class Completed:
    result: ConversationResult

    status = JobStatus.COMPLETED
    state = JobState.COMPLETED


@dataclass(frozen=True)
class Failed:
    error: BaseException

    status = JobStatus.FAILED
    state = JobState.FAILED


@dataclass(frozen=True)
class Rejected:
    reason: str | None = None

    status = JobStatus.REJECTED
    state = JobState.REJECTED


@dataclass(frozen=True)
class TimedOut:
    status = JobStatus.TIMEOUT
    state = JobState.TIMEOUT


JobOutcome = Union[Completed, Failed, Rejected, TimedOut]


def new_job_key() -> str:
    """Fresh random 128-bit job key."""
    return str(uuid.uuid4())
