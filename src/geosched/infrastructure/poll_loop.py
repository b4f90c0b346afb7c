"""Shared async polling loop abstraction."""

from __future__ import annotations

import asyncio
from typing import Callable, Awaitable

from geosched.infrastructure.logger import logger


class PollLoop:
    """An async polling loop that calls a function at regular intervals.

    `tick()` runs one iteration on demand (e.g. from an external trigger)
    without waiting for the interval. `stop()` never interrupts an iteration,
    so work claimed inside `fn` is always finished.
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._stopped = True
        self._ticks = 0
        self._wake = asyncio.Event()

    @property
    def running(self) -> bool:
        return not self._stopped

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        """Start the polling loop as a background task."""
        if self._task is not None:
            return
        self._stopped = False
        self._wake.clear()
        self._task = asyncio.create_task(self._loop(), name=f"{self._name}-poll")
        logger.info(f"{self._name} loop started", interval_s=self._interval)

    async def stop(self) -> None:
        """Stop the loop. An in-flight iteration runs to completion first."""
        self._stopped = True
        self._wake.set()
        task, self._task = self._task, None
        if task is None:
            return
        await task
        logger.info(f"{self._name} loop stopped", ticks=self._ticks)

    async def tick(self) -> None:
        """Run one iteration. Errors are logged, never raised."""
        self._ticks += 1
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Error in {self._name} loop")

    async def _loop(self) -> None:
        while not self._stopped:
            await self.tick()
            if not self._stopped:
                await self._sleep()

    async def _sleep(self) -> None:
        # Returns early when stop() is called.
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            pass


def start_poll_loop(name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval_s, fn)
    loop.start()
    return loop
