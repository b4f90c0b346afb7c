"""Task lifecycle state machine.

Every operation validates the transition against the task's current status
and returns the field changes to persist; nothing here touches a store. The
pending -> running step is carried out by the store's atomic claim, so
`begin` only checks the guard.

    pending -> paused | running | cancelled
    paused  -> pending | cancelled
    running -> completed | failed   (failure with retries left lands in pending)
    failed  -> pending (manual retry) | cancelled
    completed, cancelled: terminal
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from geosched.infrastructure.clock import Clock
from geosched.infrastructure.config import RETRY_DELAY_MINUTES
from geosched.scheduling.errors import (
    CannotDeleteRunningTaskError,
    InvalidScheduleTimeError,
    InvalidStatusTransitionError,
)
from geosched.scheduling.types import (
    AuditInfo,
    CreateScheduledTaskInput,
    ScheduledTask,
    TaskExecutionResult,
    TaskStatus,
    UpdateScheduledTaskInput,
)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PAUSED, TaskStatus.RUNNING, TaskStatus.CANCELLED}),
    TaskStatus.PAUSED: frozenset({TaskStatus.PENDING, TaskStatus.CANCELLED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

EDITABLE_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.PENDING, TaskStatus.PAUSED})


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(task: ScheduledTask, target: TaskStatus) -> None:
    if not can_transition(task.status, target):
        raise InvalidStatusTransitionError(task.id, task.status, target)


def backoff_delay(attempt: int) -> timedelta:
    """2^attempt minutes."""
    return timedelta(minutes=2**attempt)


def generate_task_id() -> str:
    return f"sched_{uuid.uuid4()}"


class TaskLifecycle:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def ensure_future(self, scheduled_for: datetime) -> None:
        if scheduled_for <= self._clock.now():
            raise InvalidScheduleTimeError(scheduled_for)

    # --- Creation & edits ---

    def new_task(self, data: CreateScheduledTaskInput) -> ScheduledTask:
        self.ensure_future(data.scheduled_for)
        now = self._clock.now()
        return ScheduledTask(
            id=generate_task_id(),
            owner_id=data.owner_id,
            task_type=data.task_type,
            target_id=data.target_id,
            scheduled_for=data.scheduled_for,
            status=TaskStatus.PENDING,
            priority=data.priority,
            retry_count=0,
            max_retries=data.max_retries,
            metadata=dict(data.metadata),
            audit=AuditInfo(
                created_at=now,
                created_by=data.created_by,
                updated_at=now,
                updated_by=data.created_by,
            ),
        )

    def edit(self, task: ScheduledTask, data: UpdateScheduledTaskInput) -> dict[str, Any]:
        if task.status not in EDITABLE_STATUSES:
            raise InvalidStatusTransitionError(task.id, task.status, task.status)

        changes: dict[str, Any] = {
            "audit": task.audit.model_copy(update={"updated_by": data.updated_by}),
        }
        if data.scheduled_for is not None:
            self.ensure_future(data.scheduled_for)
            changes["scheduled_for"] = data.scheduled_for
        if data.priority is not None:
            changes["priority"] = data.priority
        if data.metadata is not None:
            changes["metadata"] = {**task.metadata, **data.metadata}
        return changes

    def ensure_deletable(self, task: ScheduledTask) -> None:
        if task.status == TaskStatus.RUNNING:
            raise CannotDeleteRunningTaskError(task.id)

    # --- Owner-driven transitions ---

    def pause(self, task: ScheduledTask) -> dict[str, Any]:
        ensure_transition(task, TaskStatus.PAUSED)
        return {"status": TaskStatus.PAUSED}

    def resume(self, task: ScheduledTask) -> dict[str, Any]:
        if task.status != TaskStatus.PAUSED:
            raise InvalidStatusTransitionError(task.id, task.status, TaskStatus.PENDING)
        return {"status": TaskStatus.PENDING}

    def cancel(self, task: ScheduledTask, reason: str) -> dict[str, Any]:
        ensure_transition(task, TaskStatus.CANCELLED)
        return {
            "status": TaskStatus.CANCELLED,
            "last_error": reason,
            "metadata": {
                **task.metadata,
                "cancellationReason": reason,
                "cancelledAt": self._clock.now().isoformat(),
            },
        }

    def retry(self, task: ScheduledTask, scheduled_for: datetime | None = None) -> dict[str, Any]:
        """Re-queue a task whose retries ran out."""
        if task.status != TaskStatus.FAILED:
            raise InvalidStatusTransitionError(task.id, task.status, TaskStatus.PENDING)
        if scheduled_for is None:
            scheduled_for = self._clock.now() + timedelta(minutes=RETRY_DELAY_MINUTES)
        else:
            self.ensure_future(scheduled_for)
        return {
            "status": TaskStatus.PENDING,
            "scheduled_for": scheduled_for,
            "retry_count": 0,
            "result": None,
        }

    # --- Execution transitions ---

    def begin(self, task: ScheduledTask) -> None:
        ensure_transition(task, TaskStatus.RUNNING)

    def complete(self, task: ScheduledTask, result: TaskExecutionResult) -> dict[str, Any]:
        ensure_transition(task, TaskStatus.COMPLETED)
        return {
            "status": TaskStatus.COMPLETED,
            "completed_at": self._clock.now(),
            "result": result,
        }

    def fail(self, task: ScheduledTask, error: str, duration_ms: int = 0) -> dict[str, Any]:
        ensure_transition(task, TaskStatus.FAILED)
        now = self._clock.now()
        attempts = task.retry_count + 1

        if attempts < task.max_retries:
            return {
                "status": TaskStatus.PENDING,
                "retry_count": attempts,
                "last_error": error,
                "scheduled_for": now + backoff_delay(attempts),
                "metadata": {
                    **task.metadata,
                    "lastFailure": {
                        "error": error,
                        "timestamp": now.isoformat(),
                        "retryCount": attempts,
                    },
                },
            }

        return {
            "status": TaskStatus.FAILED,
            "retry_count": min(attempts, task.max_retries),
            "last_error": error,
            "result": TaskExecutionResult(
                success=False,
                message=f"Task failed after {attempts} attempts: {error}",
                duration_ms=duration_ms,
                executed_at=now,
            ),
        }
