"""Executor protocol and the task-type registry."""

from __future__ import annotations

import time
from typing import Any, Protocol, runtime_checkable

from geosched.infrastructure.logger import logger
from geosched.scheduling.errors import UnknownTaskTypeError
from geosched.scheduling.types import ExecutionOutcome, TaskType


@runtime_checkable
class TaskExecutor(Protocol):
    """Performs the side effect for one task type (post, publish, sync...)."""

    async def __call__(self, target_id: str, metadata: dict[str, Any]) -> ExecutionOutcome: ...


class ExecutorRegistry:
    """Maps each TaskType to the executor that handles it."""

    def __init__(self) -> None:
        self._executors: dict[TaskType, TaskExecutor] = {}

    def register(self, task_type: TaskType, executor: TaskExecutor, *, replace: bool = False) -> None:
        task_type = TaskType(task_type)
        if task_type in self._executors and not replace:
            raise ValueError(f'Executor for "{task_type.value}" is already registered')
        self._executors[task_type] = executor

    def get(self, task_type: TaskType) -> TaskExecutor:
        executor = self._executors.get(task_type)
        if executor is None:
            raise UnknownTaskTypeError(task_type)
        return executor

    def registered_types(self) -> list[TaskType]:
        return list(self._executors)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._executors


class LoggingExecutor:
    """Stand-in executor that acknowledges the task without side effects."""

    def __init__(self, task_type: TaskType, message: str) -> None:
        self._task_type = task_type
        self._message = message

    async def __call__(self, target_id: str, metadata: dict[str, Any]) -> ExecutionOutcome:
        start = time.monotonic()
        logger.info("Executing task", task_type=self._task_type.value, target_id=target_id)
        return ExecutionOutcome(
            success=True,
            message=self._message,
            data={"targetId": target_id},
            duration_ms=int((time.monotonic() - start) * 1000),
        )


_DEFAULT_MESSAGES = {
    TaskType.REDDIT_POST: "Reddit post submitted",
    TaskType.ENGAGEMENT_REFRESH: "Engagement metrics refreshed",
    TaskType.CONTENT_PUBLISH: "Content published",
    TaskType.ANALYTICS_SYNC: "Analytics synchronized",
}


def build_default_registry() -> ExecutorRegistry:
    """Registry with a LoggingExecutor for every task type."""
    registry = ExecutorRegistry()
    for task_type in TaskType:
        registry.register(task_type, LoggingExecutor(task_type, _DEFAULT_MESSAGES.get(task_type, "Done")))
    return registry
