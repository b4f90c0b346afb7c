"""Execution dispatcher: claims due tasks and drives them through an executor."""

from __future__ import annotations

import asyncio
import time

from geosched.execution.executors import ExecutorRegistry
from geosched.infrastructure.logger import logger
from geosched.scheduling.errors import SchedulingError, TaskExecutionError
from geosched.scheduling.task_service import SchedulingService
from geosched.scheduling.types import ScheduledTask, TaskExecutionResult


class ExecutionDispatcher:
    """Stateless between calls; safe to drive from a poll loop or an external trigger.

    No timeout is applied to executors. Wrap the executor if one is needed.
    """

    def __init__(self, service: SchedulingService, registry: ExecutorRegistry) -> None:
        self._service = service
        self._registry = registry

    def get_next_task_to_execute(self) -> ScheduledTask | None:
        return self._service.get_next_task_to_execute()

    async def execute_task(self, id: str) -> TaskExecutionResult:
        """Run one specific task. Raises TaskNotFoundError / InvalidStatusTransitionError."""
        task = self._service.begin_execution(id)
        return await self._run(task)

    async def execute_next(self) -> TaskExecutionResult | None:
        """Claim and run the highest-priority due task, if any."""
        task = self._service.claim_next_task()
        if task is None:
            return None
        return await self._run(task)

    async def _run(self, task: ScheduledTask) -> TaskExecutionResult:
        start_time = time.monotonic()
        logger.info(
            "Running scheduled task",
            task_id=task.id,
            task_type=task.task_type.value,
            attempt=task.retry_count + 1,
        )

        try:
            executor = self._registry.get(task.task_type)
            outcome = await executor(task.target_id, dict(task.metadata))
            if not outcome.success:
                raise TaskExecutionError(task.id, outcome.message or "Executor reported failure")
        except asyncio.CancelledError:
            # A cancelled attempt counts as a failed one.
            self._record_failure(task, "Execution cancelled", _elapsed_ms(start_time))
            raise
        except Exception as err:
            error = err.error if isinstance(err, TaskExecutionError) else str(err) or type(err).__name__
            return self._record_failure(task, error, _elapsed_ms(start_time))

        result = TaskExecutionResult(
            success=True,
            message=outcome.message,
            data=outcome.data,
            duration_ms=outcome.duration_ms,
            executed_at=self._service.clock.now(),
        )
        try:
            self._service.complete_task(task.id, result)
        except SchedulingError as err:
            logger.error("Could not record task completion", task_id=task.id, error=str(err))
            return TaskExecutionResult(
                success=False,
                message=str(err),
                data=outcome.data,
                duration_ms=outcome.duration_ms,
                executed_at=result.executed_at,
            )
        logger.info("Task completed", task_id=task.id, duration_ms=outcome.duration_ms)
        return result

    def _record_failure(self, task: ScheduledTask, error: str, duration_ms: int) -> TaskExecutionResult:
        logger.error("Task execution failed", task_id=task.id, error=error, duration_ms=duration_ms)
        try:
            self._service.fail_task(task.id, error, duration_ms)
        except SchedulingError as err:
            logger.error("Could not record task failure", task_id=task.id, error=str(err))
        return TaskExecutionResult(
            success=False,
            message=error,
            duration_ms=duration_ms,
            executed_at=self._service.clock.now(),
        )


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
