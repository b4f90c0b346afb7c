"""Barrel re-export of all domain types."""

from geosched.scheduling.types import (
    AuditInfo,
    CreateScheduledTaskInput,
    ExecutionOutcome,
    PageInfo,
    PaginationParams,
    ScheduleConflict,
    ScheduledTask,
    SchedulingPreferences,
    TaskExecutionResult,
    TaskPage,
    TaskStatus,
    TaskType,
    UpdateScheduledTaskInput,
    UserRef,
)

__all__ = [
    "AuditInfo",
    "CreateScheduledTaskInput",
    "ExecutionOutcome",
    "PageInfo",
    "PaginationParams",
    "ScheduleConflict",
    "ScheduledTask",
    "SchedulingPreferences",
    "TaskExecutionResult",
    "TaskPage",
    "TaskStatus",
    "TaskType",
    "UpdateScheduledTaskInput",
    "UserRef",
]
