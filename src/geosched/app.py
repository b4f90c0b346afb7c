"""Orchestrator class: composes the store, services and scheduler loop."""

from __future__ import annotations

from geosched.execution.dispatcher import ExecutionDispatcher
from geosched.execution.executors import ExecutorRegistry, build_default_registry
from geosched.infrastructure.clock import Clock, SystemClock
from geosched.infrastructure.config import (
    MAX_CONCURRENT_EXECUTIONS,
    SCHEDULER_POLL_INTERVAL,
    STORE_BACKEND,
)
from geosched.infrastructure.database import AppDatabase
from geosched.infrastructure.logger import logger
from geosched.infrastructure.poll_loop import PollLoop
from geosched.scheduling.repository import InMemoryTaskStore, TaskStore
from geosched.scheduling.scheduler import start_scheduler_loop
from geosched.scheduling.task_service import SchedulingService
from geosched.scheduling.types import TaskType


class Orchestrator:
    """Composes the store, service and dispatcher, and owns the scheduler loop."""

    def __init__(
        self,
        backend: str = STORE_BACKEND,
        registry: ExecutorRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._clock = clock or SystemClock()
        self._registry = registry or build_default_registry()
        self._db: AppDatabase | None = None
        self._scheduler_handle: PollLoop | None = None
        self.service: SchedulingService | None = None
        self.dispatcher: ExecutionDispatcher | None = None

    def _build_store(self) -> TaskStore:
        if self._backend == "sqlite":
            self._db = AppDatabase(self._clock)
            self._db.init()
            assert self._db.task_store is not None
            return self._db.task_store
        if self._backend != "memory":
            logger.warning("Unknown store backend, using memory", backend=self._backend)
        return InMemoryTaskStore(self._clock)

    async def start(
        self,
        interval_s: float = SCHEDULER_POLL_INTERVAL,
        batch_size: int = MAX_CONCURRENT_EXECUTIONS,
    ) -> None:
        """Initialize all services and start the scheduler loop."""
        logger.info("Starting scheduler...", backend=self._backend)

        missing = [t.value for t in TaskType if t not in self._registry]
        if missing:
            logger.warning("No executor registered; these tasks will fail", task_types=missing)

        store = self._build_store()
        self.service = SchedulingService(store, self._clock)
        self.dispatcher = ExecutionDispatcher(self.service, self._registry)

        self._scheduler_handle = start_scheduler_loop(self.dispatcher, interval_s, batch_size)
        logger.info(
            "Scheduler started",
            task_types=[t.value for t in self._registry.registered_types()],
            pending=store.count(),
        )

    async def shutdown(self) -> None:
        """Gracefully shut down all services."""
        logger.info("Shutting down scheduler...")

        if self._scheduler_handle:
            await self._scheduler_handle.stop()
            self._scheduler_handle = None
        if self._db:
            self._db.close()
            self._db = None

        logger.info("Scheduler shut down complete")
