"""Owner-scoped schedule conflict detection."""

from __future__ import annotations

from datetime import datetime

from geosched.infrastructure.config import DEFAULT_SCHEDULE_BUFFER_MINUTES
from geosched.scheduling.repository import TaskStore
from geosched.scheduling.types import ScheduleConflict


class ConflictDetector:
    def __init__(self, store: TaskStore, default_buffer_minutes: int = DEFAULT_SCHEDULE_BUFFER_MINUTES) -> None:
        self._store = store
        self._default_buffer = default_buffer_minutes

    def detect(
        self,
        owner_id: str,
        proposed_time: datetime,
        buffer_minutes: int | None = None,
        exclude_id: str | None = None,
    ) -> list[ScheduleConflict]:
        """Non-terminal tasks of `owner_id` within +/- buffer of `proposed_time` (inclusive)."""
        buffer = self._default_buffer if buffer_minutes is None else buffer_minutes
        tasks = self._store.find_conflicts(owner_id, proposed_time, buffer, exclude_id)
        return [
            ScheduleConflict(
                existing_task_id=task.id,
                scheduled_for=task.scheduled_for,
                task_type=task.task_type,
                reason=(
                    f"Task of type '{task.task_type.value}' is scheduled within "
                    f"{buffer} minutes of the proposed time"
                ),
            )
            for task in tasks
        ]

    def has_conflicts(
        self,
        owner_id: str,
        proposed_time: datetime,
        buffer_minutes: int | None = None,
        exclude_id: str | None = None,
    ) -> bool:
        buffer = self._default_buffer if buffer_minutes is None else buffer_minutes
        return bool(self._store.find_conflicts(owner_id, proposed_time, buffer, exclude_id))
