"""
Job coordinator: one call job per input record.

Enqueues a job per record under a fresh key, handles the queue events,
writes exactly one report row per resolved job and signals when every job
has settled.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from callbatch.config import Settings, get_settings
from callbatch.engine.interface import Application, Conversation, EngineError, QueueEvent
from callbatch.jobs.models import (
    Completed,
    Failed,
    InvalidTransitionError,
    JobOutcome,
    JobState,
    JobStatus,
    Rejected,
    TimedOut,
    new_job_key,
    transition,
)
from callbatch.jobs.store import CorrelationStore
from callbatch.records.loader import InputRecord
from callbatch.reports.writer import OutputRow, ReportWriter, format_cell
from callbatch.shared.exceptions import ReportWriteError
from callbatch.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _as_dict(output: Any) -> Any:
    # Non-mapping output is left for OutputRow validation to reject
    return dict(output) if isinstance(output, Mapping) else output


class JobCoordinator:
    """Owns the lifecycle of every submitted call job.

    Handlers run on the event loop one at a time between suspension
    points, so the store needs no locking. Drain is signalled exactly once,
    on the removal that empties the store (or right after enqueueing
    nothing).
    """

    def __init__(
        self,
        application: Application,
        store: CorrelationStore,
        writer: ReportWriter,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] = _local_now,
        key_factory: Callable[[], str] = new_job_key,
    ) -> None:
        self._application = application
        self._store = store
        self._writer = writer
        self._settings = settings or get_settings()
        self._clock = clock
        self._key_factory = key_factory

        self._states: dict[str, JobState] = {}
        self._summary: Counter[JobStatus] = Counter()
        self._drained = asyncio.Event()
        self._drain_count = 0
        self._fatal: BaseException | None = None

        self.attach()

    def attach(self) -> None:
        queue = self._application.queue
        queue.on(QueueEvent.READY, self.on_ready)
        queue.on(QueueEvent.ERROR, self.on_error)
        queue.on(QueueEvent.REJECTED, self.on_rejected)
        queue.on(QueueEvent.TIMEOUT, self.on_timeout)

    # ------------------------------------------------------------------
    # Enqueue phase
    # ------------------------------------------------------------------

    def enqueue(self, records: Iterable[InputRecord]) -> list[str]:
        """Register and push one job per record, in order."""
        keys: list[str] = []
        for record in records:
            key = self._key_factory()
            self._store.put(key, record)
            self._states[key] = JobState.ENQUEUED
            self._application.queue.push(key)
            keys.append(key)

        logger.info("%d call(s) enqueued", len(keys), extra={"enqueued": len(keys)})

        if not keys:
            self._signal_drained()
        return keys

    # ------------------------------------------------------------------
    # Queue events
    # ------------------------------------------------------------------

    async def on_ready(self, key: str, conversation: Conversation) -> None:
        record = self._store.get(key)
        if record is None:
            await self._reject_unknown(key, conversation)
            return

        self._advance(key, JobState.RUNNING)

        conversation.input = dict(record)
        conversation.audio.noise_volume = self._settings.noise_volume
        conversation.sip.config = self._settings.sip_config
        conversation.audio.tts = self._settings.tts_profile

        try:
            result = await conversation.execute()
        except Exception as e:
            name = e.name if isinstance(e, EngineError) else type(e).__name__
            logger.error(
                "Job %s execution was failed. Error: %s: %s",
                key,
                name,
                e,
                extra={"key": key, "error_name": name},
            )
            self._resolve(key, Failed(e), record)
            return

        logger.info(
            "Job %s completed",
            key,
            extra={"key": key, "output": result.output, "record": result.recording_url},
        )
        self._resolve(key, Completed(result), record)

    async def on_rejected(self, key: str, error: BaseException | None = None) -> None:
        timestamp = self._clock()
        name = getattr(error, "name", type(error).__name__ if error else None)
        reason = getattr(error, "reason", None)
        logger.warning(
            "Job %s was rejected. Error %s:%s. Reason %s",
            key,
            name,
            error,
            reason,
            extra={"key": key, "error_name": name, "reason": reason},
        )
        self._resolve(key, Rejected(reason=reason), self._store.get(key), timestamp=timestamp)

    async def on_timeout(self, key: str) -> None:
        timestamp = self._clock()
        logger.info("Job %s was timed out", key, extra={"key": key})
        self._resolve(key, TimedOut(), self._store.get(key), timestamp=timestamp)

    def on_error(self, error: BaseException) -> None:
        """Engine fault not tied to a job: logged only."""
        name = getattr(error, "name", type(error).__name__)
        reason = getattr(error, "reason", None)
        logger.error(
            "Error %s:%s. Reason %s",
            name,
            error,
            reason,
            extra={"error_name": name, "reason": reason},
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _reject_unknown(self, key: str, conversation: Conversation) -> None:
        timestamp = self._clock()
        logger.warning(
            "Can't find data for job with key %s. Rejecting %s",
            key,
            key,
            extra={"key": key},
        )
        try:
            await conversation.ignore()
        except Exception as e:
            logger.warning("Declining job %s failed: %s", key, e, extra={"key": key})

        self._write(OutputRow(timestamp=timestamp, key=key, job_status=JobStatus.REJECTED))

    def _advance(self, key: str, target: JobState) -> None:
        self._states[key] = transition(self._states.get(key, JobState.ENQUEUED), target)

    def _resolve(
        self,
        key: str,
        outcome: JobOutcome,
        record: InputRecord | None,
        timestamp: datetime | None = None,
    ) -> None:
        state = self._states.get(key)
        if state is not None and state.is_terminal:
            logger.warning(
                "Job %s already resolved as %s; ignoring %s",
                key,
                state.value,
                outcome.status.value,
                extra={"key": key},
            )
            return

        row, target = self._build_row(key, outcome, record, timestamp or self._clock())

        if state is not None:
            try:
                self._advance(key, target)
            except InvalidTransitionError as e:
                # A live job still has to settle, whatever order the engine reports in
                logger.warning("%s for job %s; resolving anyway", e, key, extra={"key": key})
                self._states[key] = target

        try:
            self._write(row)
        finally:
            if self._store.remove(key) is not None:
                self._check_drained()

        log_with_context(
            logger,
            logging.INFO,
            "Job resolved",
            key=key,
            job_status=row.job_status.value,
            pending=self._store.size(),
        )

    def _build_row(
        self,
        key: str,
        outcome: JobOutcome,
        record: InputRecord | None,
        timestamp: datetime,
    ) -> tuple[OutputRow, JobState]:
        """Report row for outcome, or a Failed row when the result cannot be reported."""
        input_data = dict(record) if record is not None else None
        output: Any = None
        record_url: str | None = None
        if isinstance(outcome, Completed):
            output = _as_dict(outcome.result.output)
            record_url = format_cell(outcome.result.recording_url) or None

        try:
            return (
                OutputRow(
                    timestamp=timestamp,
                    key=key,
                    job_status=outcome.status,
                    input=input_data,
                    output=output,
                    record=record_url,
                ),
                outcome.state,
            )
        except (TypeError, ValueError) as e:
            logger.error(
                "Job %s returned a malformed result: %s",
                key,
                e,
                extra={"key": key},
            )
            return (
                OutputRow(
                    timestamp=timestamp,
                    key=key,
                    job_status=JobStatus.FAILED,
                    input=input_data,
                    errors=f"Malformed result: {type(e).__name__}",
                ),
                JobState.FAILED,
            )

    def _write(self, row: OutputRow) -> None:
        try:
            self._writer.write(row)
        except ReportWriteError as e:
            logger.critical("Report sink failed: %s", e, extra={"key": row.key})
            self._fatal = e
            self._drained.set()
            raise
        self._summary[row.job_status] += 1

    def _check_drained(self) -> None:
        if self._store.size() == 0:
            self._signal_drained()

    def _signal_drained(self) -> None:
        if self._drained.is_set():
            return
        self._drain_count += 1
        logger.info("All jobs settled", extra={"summary": self.summary()})
        self._drained.set()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def drained(self) -> bool:
        return self._drained.is_set()

    @property
    def drain_count(self) -> int:
        return self._drain_count

    def state_of(self, key: str) -> JobState | None:
        return self._states.get(key)

    def summary(self) -> dict[str, int]:
        return {status.value: self._summary[status] for status in JobStatus}

    async def wait_drained(self) -> None:
        """Block until every job has settled.

        Raises:
            ReportWriteError: The report sink failed; the batch cannot finish.
        """
        await self._drained.wait()
        if self._fatal is not None:
            raise self._fatal
