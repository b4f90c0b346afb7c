"""Scheduling service: the inbound operations over a task store."""

from __future__ import annotations

from datetime import datetime, timedelta

from geosched.infrastructure.clock import Clock, SystemClock
from geosched.infrastructure.config import DEFAULT_SCHEDULE_BUFFER_MINUTES, SCHEDULE_LOOKAHEAD_HOURS
from geosched.infrastructure.logger import logger
from geosched.scheduling.advisor import OptimalTimeAdvisor
from geosched.scheduling.conflicts import ConflictDetector
from geosched.scheduling.errors import InvalidStatusTransitionError, TaskNotFoundError
from geosched.scheduling.lifecycle import TaskLifecycle
from geosched.scheduling.repository import TaskStore
from geosched.scheduling.types import (
    CreateScheduledTaskInput,
    PaginationParams,
    ScheduleConflict,
    ScheduledTask,
    SchedulingPreferences,
    TaskExecutionResult,
    TaskPage,
    TaskStatus,
    TaskType,
    UpdateScheduledTaskInput,
)


class SchedulingService:
    def __init__(
        self,
        store: TaskStore,
        clock: Clock | None = None,
        default_buffer_minutes: int = DEFAULT_SCHEDULE_BUFFER_MINUTES,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._lifecycle = TaskLifecycle(self._clock)
        self._conflicts = ConflictDetector(store, default_buffer_minutes)
        self._advisor = OptimalTimeAdvisor(self._conflicts, self._clock)

    @property
    def clock(self) -> Clock:
        return self._clock

    # --- CRUD ---

    def create_scheduled_task(self, data: CreateScheduledTaskInput) -> ScheduledTask:
        task = self._store.create(self._lifecycle.new_task(data))
        logger.info(
            "Task created",
            task_id=task.id,
            owner_id=task.owner_id,
            task_type=task.task_type.value,
            scheduled_for=task.scheduled_for.isoformat(),
        )
        return task

    def get_task_by_id(self, id: str) -> ScheduledTask | None:
        return self._store.find_by_id(id)

    def update_task(self, id: str, data: UpdateScheduledTaskInput) -> ScheduledTask:
        task = self._require(id)
        return self._store.update(id, expected_status=task.status, **self._lifecycle.edit(task, data))

    def delete_task(self, id: str) -> bool:
        while True:
            task = self._store.find_by_id(id)
            if task is None:
                return False
            self._lifecycle.ensure_deletable(task)
            try:
                deleted = self._store.delete(id, expected_status=task.status)
            except InvalidStatusTransitionError:
                # Status changed since the read; re-check against the new one.
                continue
            break
        if deleted:
            logger.info("Task deleted", task_id=id)
        return deleted

    # --- Lifecycle ---

    def pause_task(self, id: str) -> ScheduledTask:
        task = self._require(id)
        return self._store.update(id, expected_status=task.status, **self._lifecycle.pause(task))

    def resume_task(self, id: str) -> ScheduledTask:
        task = self._require(id)
        return self._store.update(id, expected_status=task.status, **self._lifecycle.resume(task))

    def cancel_task(self, id: str, reason: str) -> ScheduledTask:
        task = self._require(id)
        changes = self._lifecycle.cancel(task, reason)
        updated = self._store.update(id, expected_status=task.status, **changes)
        logger.info("Task cancelled", task_id=id, reason=reason)
        return updated

    def retry_task(self, id: str, scheduled_for: datetime | None = None) -> ScheduledTask:
        task = self._require(id)
        changes = self._lifecycle.retry(task, scheduled_for)
        updated = self._store.update(id, expected_status=task.status, **changes)
        logger.info("Task re-queued", task_id=id, scheduled_for=updated.scheduled_for.isoformat())
        return updated

    def complete_task(self, id: str, result: TaskExecutionResult) -> ScheduledTask:
        task = self._require(id)
        return self._store.update(id, expected_status=task.status, **self._lifecycle.complete(task, result))

    def fail_task(self, id: str, error: str, duration_ms: int = 0) -> ScheduledTask:
        task = self._require(id)
        changes = self._lifecycle.fail(task, error, duration_ms)
        updated = self._store.update(id, expected_status=task.status, **changes)
        if updated.status == TaskStatus.PENDING:
            logger.warning(
                "Task failed, retry scheduled",
                task_id=id,
                retry_count=updated.retry_count,
                max_retries=updated.max_retries,
                next_attempt=updated.scheduled_for.isoformat(),
                error=error,
            )
        else:
            logger.error("Task failed permanently", task_id=id, attempts=task.retry_count + 1, error=error)
        return updated

    # --- Execution ---

    def begin_execution(self, id: str) -> ScheduledTask:
        """Atomically move a pending task to running."""
        self._lifecycle.begin(self._require(id))
        claimed = self._store.claim(id)
        if claimed is None:
            # Another worker claimed it between the check and the claim.
            current = self._require(id)
            raise InvalidStatusTransitionError(id, current.status, TaskStatus.RUNNING)
        logger.debug("Task claimed", task_id=id)
        return claimed

    def claim_next_task(self) -> ScheduledTask | None:
        return self._store.claim_next_executable()

    def get_next_task_to_execute(self) -> ScheduledTask | None:
        return self._store.find_next_executable()

    # --- Queries ---

    def get_tasks_by_owner(self, owner_id: str, pagination: PaginationParams | None = None) -> TaskPage:
        return self._store.find_by_owner(owner_id, pagination)

    def get_tasks_by_status(self, status: TaskStatus, owner_id: str | None = None) -> list[ScheduledTask]:
        return self._store.find_by_status(status, owner_id)

    def get_pending_tasks(self, lookahead_hours: float | None = None) -> list[ScheduledTask]:
        hours = SCHEDULE_LOOKAHEAD_HOURS if lookahead_hours is None else lookahead_hours
        return self._store.find_pending(timedelta(hours=hours))

    def get_tasks_in_time_range(
        self, start: datetime, end: datetime, owner_id: str | None = None
    ) -> list[ScheduledTask]:
        return self._store.find_by_time_range(start, end, owner_id)

    def count_tasks(
        self,
        owner_id: str | None = None,
        status: TaskStatus | None = None,
        task_type: TaskType | None = None,
    ) -> int:
        return self._store.count(owner_id=owner_id, status=status, task_type=task_type)

    # --- Suggestions ---

    def suggest_optimal_time(self, owner_id: str, preferences: SchedulingPreferences) -> datetime:
        return self._advisor.suggest(owner_id, preferences)

    def get_schedule_conflicts(
        self,
        owner_id: str,
        proposed_time: datetime,
        buffer_minutes: int | None = None,
        exclude_id: str | None = None,
    ) -> list[ScheduleConflict]:
        return self._conflicts.detect(owner_id, proposed_time, buffer_minutes, exclude_id)

    # --- Internal ---

    def _require(self, id: str) -> ScheduledTask:
        task = self._store.find_by_id(id)
        if task is None:
            raise TaskNotFoundError(id)
        return task
