"""
Calling engine interface.

The engine owns dialog, audio and telephony. This module fixes the surface
the coordinator consumes:

- CallingEngine.deploy(project_path, group_name) -> Application
- Application.queue.push(key) / Application.queue.on(event, handler)
- Application.start(concurrency) / Application.stop()
- Conversation: input, audio.noise_volume, audio.tts, sip.config,
  execute(), ignore()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from callbatch.jobs.models import ConversationResult


class QueueEvent(str, Enum):
    """Events a job queue emits."""

    READY = "ready"
    ERROR = "error"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


EventHandler = Callable[..., "Awaitable[None] | None"]


class EngineError(Exception):
    """Base exception for engine faults."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    @property
    def name(self) -> str:
        return type(self).__name__


class DeployError(EngineError):
    """The application could not be deployed."""


class ConversationRejectedError(EngineError):
    """The engine declined to run a job."""


class ConversationExecutionError(EngineError):
    """A conversation failed while executing."""


@dataclass
class AudioSettings:
    noise_volume: float = 0.0
    tts: str = "default"


@dataclass
class SipSettings:
    config: str = "default"


@dataclass
class Conversation:
    """Per-job conversation handle handed to the ready handler.

    Configuration is set by the handler before execute(); execution and
    decline are delegated to the runner that opened the conversation.
    """

    key: str
    runner: "ConversationRunner" = field(repr=False)
    conversation_id: str | None = None
    input: dict[str, Any] = field(default_factory=dict)
    audio: AudioSettings = field(default_factory=AudioSettings)
    sip: SipSettings = field(default_factory=SipSettings)

    async def execute(self) -> "ConversationResult":
        return await self.runner.execute(self)

    async def ignore(self) -> None:
        await self.runner.ignore(self)


class ConversationRunner(ABC):
    """Backend that actually places and runs conversations."""

    @abstractmethod
    async def open(self, key: str) -> Conversation:
        """Allocate a conversation for a job key.

        Raises:
            ConversationRejectedError: The platform declines the job.
        """

    @abstractmethod
    async def execute(self, conversation: Conversation) -> "ConversationResult":
        """Run the conversation to completion."""

    @abstractmethod
    async def ignore(self, conversation: Conversation) -> None:
        """Decline an opened conversation."""

    async def close(self) -> None:
        """Release runner resources."""


class JobQueue(ABC):
    """Queue of job keys awaiting execution."""

    @abstractmethod
    def push(self, key: str) -> None: ...

    @abstractmethod
    def on(self, event: QueueEvent | str, handler: EventHandler) -> None: ...


class Application(ABC):
    """A deployed application: a job queue plus its execution loop."""

    queue: JobQueue

    @abstractmethod
    async def start(self, concurrency: int) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...


class CallingEngine(ABC):
    """Entry point of an engine implementation."""

    @abstractmethod
    async def deploy(self, project_path: str, group_name: str = "Default") -> Application: ...

    async def close(self) -> None:
        """Release engine resources not owned by a deployed application."""
