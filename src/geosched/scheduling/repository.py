"""Task store contract and the in-memory reference store."""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from geosched.infrastructure.clock import Clock, SystemClock
from geosched.infrastructure.config import DEFAULT_SCHEDULE_BUFFER_MINUTES, MAX_PAGE_SIZE
from geosched.scheduling.errors import InvalidStatusTransitionError, TaskNotFoundError
from geosched.scheduling.types import (
    PageInfo,
    PaginationParams,
    ScheduledTask,
    TaskPage,
    TaskStatus,
    TaskType,
)


def execution_order(task: ScheduledTask) -> tuple[int, datetime]:
    """Sort key: highest priority first, then earliest scheduled time."""
    return (-task.priority, task.scheduled_for)


def ensure_status(
    task: ScheduledTask, expected: TaskStatus | None, target: TaskStatus | None = None
) -> None:
    """Precondition for a compare-and-set write against the stored record."""
    if expected is not None and task.status != expected:
        raise InvalidStatusTransitionError(task.id, task.status, target or task.status)


def paginate(tasks: list[ScheduledTask], pagination: PaginationParams | None) -> TaskPage:
    params = pagination or PaginationParams()
    page_size = min(params.page_size, MAX_PAGE_SIZE)
    total_items = len(tasks)
    total_pages = math.ceil(total_items / page_size) or 1
    start = (params.page - 1) * page_size
    return TaskPage(
        data=tasks[start : start + page_size],
        pagination=PageInfo(
            page=params.page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next_page=params.page < total_pages,
            has_previous_page=params.page > 1,
        ),
    )


class TaskStore(ABC):
    """Persistence contract for scheduled tasks.

    Every returned task is a private copy. `claim` and `claim_next_executable`
    must perform the pending -> running transition atomically with the
    selection, so a task can never be handed to two callers.
    """

    @abstractmethod
    def create(self, task: ScheduledTask) -> ScheduledTask: ...

    @abstractmethod
    def find_by_id(self, id: str) -> ScheduledTask | None: ...

    @abstractmethod
    def update(self, id: str, *, expected_status: TaskStatus | None = None, **changes: Any) -> ScheduledTask:
        """Apply field changes and bump audit.updated_at. Raises TaskNotFoundError.

        With `expected_status` the write is a compare-and-set: if the stored
        status no longer matches, nothing is written and
        InvalidStatusTransitionError is raised.
        """

    @abstractmethod
    def delete(self, id: str, *, expected_status: TaskStatus | None = None) -> bool:
        """Remove a task; False if absent. `expected_status` works as in `update`."""

    @abstractmethod
    def find_by_owner(self, owner_id: str, pagination: PaginationParams | None = None) -> TaskPage: ...

    @abstractmethod
    def find_by_status(self, status: TaskStatus, owner_id: str | None = None) -> list[ScheduledTask]: ...

    @abstractmethod
    def find_pending(self, lookahead: timedelta) -> list[ScheduledTask]: ...

    @abstractmethod
    def find_by_time_range(
        self, start: datetime, end: datetime, owner_id: str | None = None
    ) -> list[ScheduledTask]: ...

    @abstractmethod
    def find_next_executable(self) -> ScheduledTask | None: ...

    @abstractmethod
    def find_conflicts(
        self,
        owner_id: str,
        proposed_time: datetime,
        buffer_minutes: int | None = None,
        exclude_id: str | None = None,
    ) -> list[ScheduledTask]: ...

    @abstractmethod
    def count(
        self,
        owner_id: str | None = None,
        status: TaskStatus | None = None,
        task_type: TaskType | None = None,
    ) -> int: ...

    @abstractmethod
    def claim(self, id: str) -> ScheduledTask | None:
        """Move a pending task to running. Returns None if it was not pending."""

    @abstractmethod
    def claim_next_executable(self) -> ScheduledTask | None:
        """Select and claim what find_next_executable would return, in one step."""

    @abstractmethod
    def all(self) -> list[ScheduledTask]: ...

    @abstractmethod
    def clear(self) -> None: ...


class InMemoryTaskStore(TaskStore):
    """Process-local store: records keyed by id with owner and status indexes."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tasks: dict[str, ScheduledTask] = {}
        self._by_owner: dict[str, set[str]] = defaultdict(set)
        self._by_status: dict[TaskStatus, set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    # --- CRUD ---

    def create(self, task: ScheduledTask) -> ScheduledTask:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task already exists: {task.id}")
            stored = task.model_copy(deep=True)
            self._tasks[stored.id] = stored
            self._index(stored)
            return stored.model_copy(deep=True)

    def find_by_id(self, id: str) -> ScheduledTask | None:
        with self._lock:
            task = self._tasks.get(id)
            return task.model_copy(deep=True) if task else None

    def update(self, id: str, *, expected_status: TaskStatus | None = None, **changes: Any) -> ScheduledTask:
        with self._lock:
            existing = self._tasks.get(id)
            if existing is None:
                raise TaskNotFoundError(id)
            ensure_status(existing, expected_status, changes.get("status"))
            return self._apply(existing, changes).model_copy(deep=True)

    def delete(self, id: str, *, expected_status: TaskStatus | None = None) -> bool:
        with self._lock:
            task = self._tasks.get(id)
            if task is None:
                return False
            ensure_status(task, expected_status)
            del self._tasks[id]
            self._unindex(task)
            return True

    # --- Queries ---

    def find_by_owner(self, owner_id: str, pagination: PaginationParams | None = None) -> TaskPage:
        with self._lock:
            tasks = self._select(self._by_owner.get(owner_id, ()))
        tasks.sort(key=lambda t: t.scheduled_for, reverse=True)
        return paginate(tasks, pagination)

    def find_by_status(self, status: TaskStatus, owner_id: str | None = None) -> list[ScheduledTask]:
        with self._lock:
            tasks = self._select(
                self._by_status.get(status, ()),
                lambda t: owner_id is None or t.owner_id == owner_id,
            )
        return sorted(tasks, key=lambda t: t.scheduled_for)

    def find_pending(self, lookahead: timedelta) -> list[ScheduledTask]:
        now = self._clock.now()
        end = now + lookahead
        with self._lock:
            tasks = self._select(
                self._by_status.get(TaskStatus.PENDING, ()),
                lambda t: now <= t.scheduled_for <= end,
            )
        return sorted(tasks, key=lambda t: t.scheduled_for)

    def find_by_time_range(
        self, start: datetime, end: datetime, owner_id: str | None = None
    ) -> list[ScheduledTask]:
        with self._lock:
            ids = self._by_owner.get(owner_id, ()) if owner_id is not None else self._tasks.keys()
            tasks = self._select(ids, lambda t: start <= t.scheduled_for <= end)
        return sorted(tasks, key=lambda t: t.scheduled_for)

    def find_next_executable(self) -> ScheduledTask | None:
        with self._lock:
            task = self._next_due()
            return task.model_copy(deep=True) if task else None

    def find_conflicts(
        self,
        owner_id: str,
        proposed_time: datetime,
        buffer_minutes: int | None = None,
        exclude_id: str | None = None,
    ) -> list[ScheduledTask]:
        buffer = timedelta(
            minutes=DEFAULT_SCHEDULE_BUFFER_MINUTES if buffer_minutes is None else buffer_minutes
        )
        window_start, window_end = proposed_time - buffer, proposed_time + buffer
        with self._lock:
            tasks = self._select(
                self._by_owner.get(owner_id, ()),
                lambda t: t.id != exclude_id
                and not t.is_terminal
                and window_start <= t.scheduled_for <= window_end,
            )
        return sorted(tasks, key=lambda t: t.scheduled_for)

    def count(
        self,
        owner_id: str | None = None,
        status: TaskStatus | None = None,
        task_type: TaskType | None = None,
    ) -> int:
        with self._lock:
            return sum(
                1
                for t in self._tasks.values()
                if (owner_id is None or t.owner_id == owner_id)
                and (status is None or t.status == status)
                and (task_type is None or t.task_type == task_type)
            )

    # --- Claiming ---

    def claim(self, id: str) -> ScheduledTask | None:
        with self._lock:
            task = self._tasks.get(id)
            if task is None or task.status != TaskStatus.PENDING:
                return None
            return self._mark_running(task)

    def claim_next_executable(self) -> ScheduledTask | None:
        with self._lock:
            task = self._next_due()
            if task is None:
                return None
            return self._mark_running(task)

    # --- Debugging ---

    def all(self) -> list[ScheduledTask]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._tasks.values()]

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
            self._by_owner.clear()
            self._by_status.clear()

    # --- Internal ---

    def _next_due(self) -> ScheduledTask | None:
        now = self._clock.now()
        due = [
            self._tasks[i]
            for i in self._by_status.get(TaskStatus.PENDING, ())
            if self._tasks[i].scheduled_for <= now
        ]
        return min(due, key=execution_order) if due else None

    def _mark_running(self, task: ScheduledTask) -> ScheduledTask:
        now = self._clock.now()
        changes: dict[str, Any] = {"status": TaskStatus.RUNNING}
        if task.executed_at is None:
            changes["executed_at"] = now
        return self._apply(task, changes).model_copy(deep=True)

    def _apply(self, existing: ScheduledTask, changes: dict[str, Any]) -> ScheduledTask:
        changes = {k: v for k, v in changes.items() if k != "id"}
        audit = changes.pop("audit", None) or existing.audit
        changes["audit"] = audit.model_copy(update={"updated_at": self._clock.now()})
        updated = existing.model_copy(update=changes).model_copy(deep=True)
        self._unindex(existing)
        self._tasks[updated.id] = updated
        self._index(updated)
        return updated

    def _select(
        self, ids: Iterable[str], predicate: Callable[[ScheduledTask], bool] | None = None
    ) -> list[ScheduledTask]:
        return [
            self._tasks[i].model_copy(deep=True)
            for i in list(ids)
            if i in self._tasks and (predicate is None or predicate(self._tasks[i]))
        ]

    def _index(self, task: ScheduledTask) -> None:
        self._by_owner[task.owner_id].add(task.id)
        self._by_status[task.status].add(task.id)

    def _unindex(self, task: ScheduledTask) -> None:
        self._by_owner[task.owner_id].discard(task.id)
        self._by_status[task.status].discard(task.id)
