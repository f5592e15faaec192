"""
Delayed process exit once every job has settled.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Awaitable, Callable

from callbatch.shared.logging import get_logger

logger = get_logger(__name__)


class ShutdownTimer:
    """Wait a grace period for in-flight I/O, then exit with status 0.

    Fires at most once; there is no cancellation path.
    """

    def __init__(
        self,
        delay_seconds: float = 10.0,
        exit_func: Callable[[int], object] = sys.exit,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._delay_seconds = delay_seconds
        self._exit_func = exit_func
        self._sleep = sleep
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    async def fire(self) -> None:
        if self._fired:
            logger.debug("Shutdown already triggered; ignoring")
            return
        self._fired = True

        logger.info(
            "Calls ended. Waiting %s seconds to close application...",
            f"{self._delay_seconds:g}",
            extra={"delay_seconds": self._delay_seconds},
        )
        await self._sleep(self._delay_seconds)
        self._exit_func(0)
