"""Scheduling domain types."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from geosched.infrastructure.clock import ensure_utc
from geosched.infrastructure.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PRIORITY,
)


class TaskType(str, Enum):
    REDDIT_POST = "reddit_post"
    ENGAGEMENT_REFRESH = "engagement_refresh"
    CONTENT_PUBLISH = "content_publish"
    ANALYTICS_SYNC = "analytics_sync"


class TaskStatus(str, Enum):
    PENDING = "pending"
    PAUSED = "paused"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses that no longer occupy a slot in an owner's schedule.
TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)


class UserRef(BaseModel):
    id: str
    email: str = ""
    display_name: str = ""


class AuditInfo(BaseModel):
    created_at: datetime
    created_by: UserRef
    updated_at: datetime
    updated_by: UserRef


class TaskExecutionResult(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    duration_ms: int = 0
    executed_at: datetime


class ScheduledTask(BaseModel):
    id: str
    owner_id: str
    task_type: TaskType
    target_id: str
    scheduled_for: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: int = DEFAULT_PRIORITY
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    last_error: str | None = None
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    result: TaskExecutionResult | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    audit: AuditInfo

    @field_validator("scheduled_for", "executed_at", "completed_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class CreateScheduledTaskInput(BaseModel):
    owner_id: str
    task_type: TaskType
    target_id: str
    scheduled_for: datetime
    priority: int = DEFAULT_PRIORITY
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: UserRef

    @field_validator("scheduled_for")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class UpdateScheduledTaskInput(BaseModel):
    scheduled_for: datetime | None = None
    priority: int | None = None
    metadata: dict[str, Any] | None = None
    updated_by: UserRef

    @field_validator("scheduled_for")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class SchedulingPreferences(BaseModel):
    """Owner preferences for the optimal-time search.

    Days run 0=Sunday .. 6=Saturday. `None` means unrestricted; an empty list
    allows nothing.
    """

    timezone: str = "UTC"
    preferred_days: list[int] | None = None
    preferred_hours: list[int] | None = None
    minimum_gap_minutes: int = Field(default=0, ge=0)
    avoid_weekends: bool = False


class ScheduleConflict(BaseModel):
    existing_task_id: str
    scheduled_for: datetime
    task_type: TaskType
    reason: str


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)


class PageInfo(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class TaskPage(BaseModel):
    data: list[ScheduledTask]
    pagination: PageInfo


class ExecutionOutcome(BaseModel):
    """What an executor reports back after performing a task's side effect."""

    success: bool
    message: str = ""
    data: dict[str, Any] | None = None
    duration_ms: int = 0
