"""Task scheduler: polls for due tasks and hands them to the dispatcher."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from geosched.execution.dispatcher import ExecutionDispatcher
from geosched.infrastructure.config import MAX_CONCURRENT_EXECUTIONS, SCHEDULER_POLL_INTERVAL
from geosched.infrastructure.logger import logger
from geosched.infrastructure.poll_loop import PollLoop, start_poll_loop


def make_scheduler_poll(
    dispatcher: ExecutionDispatcher, batch_size: int = MAX_CONCURRENT_EXECUTIONS
) -> Callable[[], Awaitable[None]]:
    """Build the per-tick function: up to `batch_size` concurrent claim-and-run calls."""

    async def poll() -> None:
        results = await asyncio.gather(*(dispatcher.execute_next() for _ in range(batch_size)))
        ran = [r for r in results if r is not None]
        if ran:
            failed = sum(1 for r in ran if not r.success)
            logger.info("Scheduler tick", executed=len(ran), failed=failed)

    return poll


def start_scheduler_loop(
    dispatcher: ExecutionDispatcher,
    interval_s: float = SCHEDULER_POLL_INTERVAL,
    batch_size: int = MAX_CONCURRENT_EXECUTIONS,
) -> PollLoop:
    """Start the scheduler polling loop."""
    return start_poll_loop("Scheduler", interval_s, make_scheduler_poll(dispatcher, batch_size))
