"""
Mock conversation runner for dev runs and tests.

Never places a call. Outcomes are scripted per job key or per phone number
and every opened, executed and ignored conversation is recorded.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

from callbatch.engine.interface import (
    Conversation,
    ConversationExecutionError,
    ConversationRejectedError,
    ConversationRunner,
)
from callbatch.engine.local import LocalApplication, LocalCallingEngine
from callbatch.jobs.models import ConversationResult
from callbatch.shared.logging import get_logger

logger = get_logger(__name__)


class MockOutcome(str, Enum):
    COMPLETE = "complete"
    FAIL = "fail"
    REJECT = "reject"
    # Never finishes; the queue deadline turns it into a timeout
    HANG = "hang"


class MockConversationRunner(ConversationRunner):
    """Scriptable in-memory runner."""

    def __init__(
        self,
        default_outcome: MockOutcome = MockOutcome.COMPLETE,
        latency_seconds: float = 0.0,
    ) -> None:
        self._default_outcome = default_outcome
        self._latency_seconds = latency_seconds
        self._by_key: dict[str, MockOutcome] = {}
        self._by_phone: dict[str, MockOutcome] = {}
        self._opened: list[str] = []
        self._executed: list[dict[str, Any]] = []
        self._ignored: list[str] = []
        self._next_conversation_id = 1
        self._fail_error = "Mock failure"
        self._fail_reason = "MOCK_ERROR"
        self.closed = False

    def reset(self) -> None:
        self._by_key.clear()
        self._by_phone.clear()
        self._opened.clear()
        self._executed.clear()
        self._ignored.clear()
        self._next_conversation_id = 1
        self._fail_error = "Mock failure"
        self._fail_reason = "MOCK_ERROR"
        self.closed = False

    def script(self, key: str, outcome: MockOutcome) -> None:
        self._by_key[key] = outcome

    def script_phone(self, phone: str, outcome: MockOutcome) -> None:
        # Phone numbers are only known once the input is set, after open()
        if outcome == MockOutcome.REJECT:
            raise ValueError("Rejections can only be scripted per job key")
        self._by_phone[phone] = outcome

    def configure_failure(self, error_message: str = "Mock failure", reason: str = "MOCK_ERROR") -> None:
        self._fail_error = error_message
        self._fail_reason = reason

    @property
    def opened(self) -> list[str]:
        return self._opened.copy()

    @property
    def executed(self) -> list[dict[str, Any]]:
        return self._executed.copy()

    @property
    def ignored(self) -> list[str]:
        return self._ignored.copy()

    def _outcome_for(self, conversation: Conversation) -> MockOutcome:
        if conversation.key in self._by_key:
            return self._by_key[conversation.key]
        phone = str(conversation.input.get("phone", ""))
        return self._by_phone.get(phone, self._default_outcome)

    async def open(self, key: str) -> Conversation:
        self._opened.append(key)
        if self._by_key.get(key, self._default_outcome) == MockOutcome.REJECT:
            raise ConversationRejectedError("Mock rejection", reason="MOCK_REJECTED")

        conversation_id = f"MOCK_CONV_{self._next_conversation_id:06d}"
        self._next_conversation_id += 1
        return Conversation(key=key, runner=self, conversation_id=conversation_id)

    async def execute(self, conversation: Conversation) -> ConversationResult:
        self._executed.append(
            {
                "key": conversation.key,
                "input": dict(conversation.input),
                "noise_volume": conversation.audio.noise_volume,
                "tts": conversation.audio.tts,
                "sip_config": conversation.sip.config,
            }
        )
        logger.info("Mock: executing conversation", extra={"key": conversation.key})

        if self._latency_seconds:
            await asyncio.sleep(self._latency_seconds)

        outcome = self._outcome_for(conversation)
        if outcome == MockOutcome.HANG:
            await asyncio.Event().wait()
        if outcome == MockOutcome.FAIL:
            raise ConversationExecutionError(self._fail_error, reason=self._fail_reason)

        return ConversationResult(
            output={"status": "completed", "serviceStatus": "ok"},
            recording_url=f"https://recordings.mock.local/{conversation.conversation_id}.wav",
        )

    async def ignore(self, conversation: Conversation) -> None:
        self._ignored.append(conversation.key)

    async def close(self) -> None:
        self.closed = True


class MockCallingEngine(LocalCallingEngine):
    """Engine for dry runs: local queue over a MockConversationRunner."""

    def __init__(
        self,
        runner: MockConversationRunner | None = None,
        job_timeout_seconds: float = 600.0,
    ) -> None:
        self.runner = runner or MockConversationRunner()
        super().__init__(self.runner, job_timeout_seconds=job_timeout_seconds)

    async def deploy(self, project_path: str, group_name: str = "Default") -> LocalApplication:
        logger.info(
            "Mock: deploying application",
            extra={"project_path": project_path, "group_name": group_name},
        )
        return LocalApplication(
            self.runner,
            job_timeout_seconds=self._job_timeout_seconds,
            application_id="MOCK_APP",
        )
