"""
In-process job queue and dispatcher.

Implements the Application/JobQueue surface on top of a ConversationRunner:
FIFO dispatch, at most `concurrency` jobs in flight, a per-job execution
deadline, and exactly one of ready/rejected/timeout per pushed key.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

from callbatch.engine.interface import (
    Application,
    CallingEngine,
    ConversationRejectedError,
    ConversationRunner,
    EngineError,
    EventHandler,
    JobQueue,
    QueueEvent,
)
from callbatch.shared.logging import get_logger, job_key_var

logger = get_logger(__name__)


class LocalJobQueue(JobQueue):
    """FIFO of job keys with one handler per event."""

    def __init__(self) -> None:
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._handlers: dict[QueueEvent, EventHandler] = {}
        self._pushed: list[str] = []

    def push(self, key: str) -> None:
        self._pending.put_nowait(key)
        self._pushed.append(key)

    def on(self, event: QueueEvent | str, handler: EventHandler) -> None:
        self._handlers[QueueEvent(event)] = handler

    def has_handler(self, event: QueueEvent) -> bool:
        return event in self._handlers

    @property
    def pushed(self) -> list[str]:
        return self._pushed.copy()

    @property
    def pending_count(self) -> int:
        return self._pending.qsize()

    async def next_key(self) -> str:
        return await self._pending.get()

    async def emit(self, event: QueueEvent, *args: Any) -> bool:
        """Invoke the handler for event. Returns False when none is registered."""
        handler = self._handlers.get(event)
        if handler is None:
            return False
        result = handler(*args)
        if inspect.isawaitable(result):
            await result
        return True


class LocalApplication(Application):
    """Dispatch loop running queued jobs through a ConversationRunner."""

    def __init__(
        self,
        runner: ConversationRunner,
        job_timeout_seconds: float = 600.0,
        application_id: str | None = None,
    ) -> None:
        self.queue = LocalJobQueue()
        self.application_id = application_id
        self._runner = runner
        self._job_timeout_seconds = job_timeout_seconds
        self._semaphore: asyncio.Semaphore | None = None
        self._dispatcher: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def start(self, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.running:
            return

        semaphore = asyncio.Semaphore(concurrency)
        self._semaphore = semaphore
        self._dispatcher = asyncio.create_task(self._dispatch(semaphore), name="callbatch-dispatcher")
        logger.info(
            "Application started",
            extra={
                "application_id": self.application_id,
                "concurrency": concurrency,
                "queued": self.queue.pending_count,
            },
        )

    async def stop(self) -> None:
        tasks = list(self._tasks)
        if self._dispatcher is not None:
            tasks.append(self._dispatcher)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatcher = None
        self._tasks.clear()
        await self._runner.close()
        logger.info("Application stopped", extra={"application_id": self.application_id})

    async def _dispatch(self, semaphore: asyncio.Semaphore) -> None:
        while True:
            key = await self.queue.next_key()
            await semaphore.acquire()
            task = asyncio.create_task(self._run_job(key), name=f"callbatch-job-{key}")
            self._tasks.add(task)
            task.add_done_callback(self._job_done)

    def _job_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if self._semaphore is not None:
            self._semaphore.release()

    async def _run_job(self, key: str) -> None:
        job_key_var.set(key)

        try:
            conversation = await self._runner.open(key)
        except EngineError as e:
            await self._emit_safely(QueueEvent.REJECTED, key, e)
            return
        except Exception as e:
            logger.exception("Unexpected failure opening conversation", extra={"key": key})
            await self._emit_safely(
                QueueEvent.REJECTED,
                key,
                EngineError(str(e), reason=type(e).__name__),
            )
            return

        if not self.queue.has_handler(QueueEvent.READY):
            try:
                await conversation.ignore()
            except Exception as e:
                await self._report_error(e)
            await self._emit_safely(
                QueueEvent.REJECTED,
                key,
                ConversationRejectedError("No ready handler registered", reason="no_handler"),
            )
            return

        try:
            await asyncio.wait_for(
                self.queue.emit(QueueEvent.READY, key, conversation),
                timeout=self._job_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.debug("Job exceeded execution deadline", extra={"key": key})
            await self._emit_safely(QueueEvent.TIMEOUT, key)
        except Exception as e:
            await self._report_error(e)

    async def _emit_safely(self, event: QueueEvent, *args: Any) -> None:
        try:
            await self.queue.emit(event, *args)
        except Exception as e:
            await self._report_error(e)

    async def _report_error(self, exc: Exception) -> None:
        error = exc if isinstance(exc, EngineError) else EngineError(str(exc), reason=type(exc).__name__)
        try:
            handled = await self.queue.emit(QueueEvent.ERROR, error)
        except Exception:
            logger.exception("Error handler failed")
            return
        if not handled:
            logger.error(
                "Unhandled engine error",
                extra={"error_name": error.name, "error_message": error.message, "reason": error.reason},
            )


class LocalCallingEngine(CallingEngine):
    """Engine whose queue runs in this process over a given runner.

    Subclasses provide remote deployment; this one deploys nothing.
    """

    def __init__(self, runner: ConversationRunner, job_timeout_seconds: float = 600.0) -> None:
        self._runner = runner
        self._job_timeout_seconds = job_timeout_seconds

    async def deploy(self, project_path: str, group_name: str = "Default") -> LocalApplication:
        logger.info(
            "Deploying application",
            extra={"project_path": project_path, "group_name": group_name},
        )
        return LocalApplication(self._runner, job_timeout_seconds=self._job_timeout_seconds)
