"""
Bounded admission for pipeline runs.

Each run owns a headless browser, so the number of runs executing at once
is capped. Waiters are admitted in arrival order.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class AdmissionQueue:
    """FIFO gate limiting concurrently executing pipeline runs."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("Admission capacity must be at least 1")
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._running = 0
        self._waiting = 0

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return self._waiting

    @asynccontextmanager
    async def admit(self) -> AsyncIterator[None]:
        """Wait for a free slot, hold it for the duration of the block."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._running += 1
        logger.debug(f"Admitted pipeline run ({self._running}/{self.capacity} running, {self._waiting} waiting)")
        try:
            yield
        finally:
            self._running -= 1
            self._semaphore.release()

    def snapshot(self) -> dict:
        return {"capacity": self.capacity, "running": self._running, "waiting": self._waiting}
