"""Scheduling error taxonomy."""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for scheduling failures. `code` is stable for API callers."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class TaskNotFoundError(SchedulingError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}", {"taskId": task_id})
        self.task_id = task_id


class InvalidScheduleTimeError(SchedulingError):
    code = "INVALID_SCHEDULE_TIME"

    def __init__(self, scheduled_for: object) -> None:
        super().__init__("Scheduled time must be in the future", {"scheduledFor": str(scheduled_for)})


class InvalidStatusTransitionError(SchedulingError):
    """A state machine violation. Signals a caller bug or a lost race; never retry it."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, task_id: str, current_status: str, target_status: str) -> None:
        current = getattr(current_status, "value", current_status)
        target = getattr(target_status, "value", target_status)
        super().__init__(
            f"Cannot transition task {task_id} from {current} to {target}",
            {"taskId": task_id, "currentStatus": current, "targetStatus": target},
        )
        self.task_id = task_id
        self.current_status = current
        self.target_status = target


class CannotDeleteRunningTaskError(SchedulingError):
    code = "CANNOT_DELETE_RUNNING_TASK"

    def __init__(self, task_id: str) -> None:
        super().__init__("Cannot delete a task that is currently running", {"taskId": task_id})


class TaskExecutionError(SchedulingError):
    code = "TASK_EXECUTION_FAILED"

    def __init__(self, task_id: str, error: str) -> None:
        super().__init__(f"Task execution failed: {error}", {"taskId": task_id, "error": error})
        self.error = error


class UnknownTaskTypeError(TaskExecutionError):
    code = "UNKNOWN_TASK_TYPE"

    def __init__(self, task_type: str, task_id: str = "") -> None:
        super().__init__(task_id, f"Unknown task type: {getattr(task_type, 'value', task_type)}")
        self.task_type = task_type
