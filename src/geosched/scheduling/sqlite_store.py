"""SQLite-backed task store."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Any

from geosched.infrastructure.clock import Clock, SystemClock, ensure_utc
from geosched.infrastructure.config import DEFAULT_SCHEDULE_BUFFER_MINUTES
from geosched.scheduling.errors import TaskNotFoundError
from geosched.scheduling.repository import TaskStore, ensure_status, paginate
from geosched.scheduling.types import (
    TERMINAL_STATUSES,
    AuditInfo,
    PaginationParams,
    ScheduledTask,
    TaskExecutionResult,
    TaskPage,
    TaskStatus,
    TaskType,
)

_JSON_COLUMNS = ("result", "metadata", "audit")
_TIME_COLUMNS = ("scheduled_for", "executed_at", "completed_at")


def _ts(value: datetime | None) -> str | None:
    # Fixed-width UTC ISO strings so lexical order matches time order.
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


class SqliteTaskStore(TaskStore):
    def __init__(self, db: sqlite3.Connection, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()

    # --- CRUD ---

    def create(self, task: ScheduledTask) -> ScheduledTask:
        row = self._task_to_row(task)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._lock:
            self._db.execute(
                f"INSERT INTO scheduled_tasks ({columns}) VALUES ({placeholders})", list(row.values())
            )
            self._db.commit()
        return self.find_by_id(task.id)  # type: ignore[return-value]

    def find_by_id(self, id: str) -> ScheduledTask | None:
        with self._lock:
            row = self._db.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (id,)).fetchone()
        return self._row_to_task(row) if row else None

    def update(self, id: str, *, expected_status: TaskStatus | None = None, **changes: Any) -> ScheduledTask:
        with self._lock:
            existing = self.find_by_id(id)
            if existing is None:
                raise TaskNotFoundError(id)
            ensure_status(existing, expected_status, changes.get("status"))
            changes.pop("id", None)
            audit: AuditInfo = changes.pop("audit", None) or existing.audit
            changes["audit"] = audit.model_copy(update={"updated_at": self._clock.now()})

            row = self._task_to_row(existing.model_copy(update=changes))
            fields = [k for k in changes if k in row]
            sql = f"UPDATE scheduled_tasks SET {', '.join(f'{k} = ?' for k in fields)} WHERE id = ?"
            params: list[Any] = [row[k] for k in fields] + [id]
            if expected_status is not None:
                sql += " AND status = ?"
                params.append(TaskStatus(expected_status).value)
            cursor = self._db.execute(sql, params)
            self._db.commit()
            if cursor.rowcount == 0:
                # Another connection moved the task between the read and the write.
                self._raise_stale(id, expected_status, changes.get("status"))
            return self.find_by_id(id)  # type: ignore[return-value]

    def delete(self, id: str, *, expected_status: TaskStatus | None = None) -> bool:
        sql = "DELETE FROM scheduled_tasks WHERE id = ?"
        params: list[Any] = [id]
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(TaskStatus(expected_status).value)
        with self._lock:
            cursor = self._db.execute(sql, params)
            self._db.commit()
            if cursor.rowcount > 0:
                return True
            current = self.find_by_id(id)
            if current is not None:
                ensure_status(current, expected_status)
        return False

    # --- Queries ---

    def find_by_owner(self, owner_id: str, pagination: PaginationParams | None = None) -> TaskPage:
        tasks = self._query(
            "SELECT * FROM scheduled_tasks WHERE owner_id = ? ORDER BY scheduled_for DESC", (owner_id,)
        )
        return paginate(tasks, pagination)

    def find_by_status(self, status: TaskStatus, owner_id: str | None = None) -> list[ScheduledTask]:
        if owner_id is None:
            return self._query(
                "SELECT * FROM scheduled_tasks WHERE status = ? ORDER BY scheduled_for", (status.value,)
            )
        return self._query(
            "SELECT * FROM scheduled_tasks WHERE status = ? AND owner_id = ? ORDER BY scheduled_for",
            (status.value, owner_id),
        )

    def find_pending(self, lookahead: timedelta) -> list[ScheduledTask]:
        now = self._clock.now()
        return self._query(
            """SELECT * FROM scheduled_tasks
               WHERE status = 'pending' AND scheduled_for >= ? AND scheduled_for <= ?
               ORDER BY scheduled_for""",
            (_ts(now), _ts(now + lookahead)),
        )

    def find_by_time_range(
        self, start: datetime, end: datetime, owner_id: str | None = None
    ) -> list[ScheduledTask]:
        sql = "SELECT * FROM scheduled_tasks WHERE scheduled_for >= ? AND scheduled_for <= ?"
        params: list[Any] = [_ts(start), _ts(end)]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        return self._query(sql + " ORDER BY scheduled_for", params)

    def find_next_executable(self) -> ScheduledTask | None:
        with self._lock:
            row = self._next_due_row()
        return self._row_to_task(row) if row else None

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
        terminal = [s.value for s in TERMINAL_STATUSES]
        return self._query(
            f"""SELECT * FROM scheduled_tasks
                WHERE owner_id = ? AND id != ?
                  AND status NOT IN ({', '.join('?' for _ in terminal)})
                  AND scheduled_for >= ? AND scheduled_for <= ?
                ORDER BY scheduled_for""",
            [owner_id, exclude_id or "", *terminal, _ts(proposed_time - buffer), _ts(proposed_time + buffer)],
        )

    def count(
        self,
        owner_id: str | None = None,
        status: TaskStatus | None = None,
        task_type: TaskType | None = None,
    ) -> int:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (("owner_id", owner_id), ("status", status), ("task_type", task_type)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(getattr(value, "value", value))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            return self._db.execute(f"SELECT COUNT(*) FROM scheduled_tasks{where}", params).fetchone()[0]

    # --- Claiming ---

    def claim(self, id: str) -> ScheduledTask | None:
        with self._lock:
            if not self._mark_running(id):
                return None
            return self.find_by_id(id)

    def claim_next_executable(self) -> ScheduledTask | None:
        with self._lock:
            while True:
                row = self._next_due_row()
                if row is None:
                    return None
                # Another connection may have claimed it in between; pick again.
                if self._mark_running(row["id"]):
                    return self.find_by_id(row["id"])

    # --- Debugging ---

    def all(self) -> list[ScheduledTask]:
        return self._query("SELECT * FROM scheduled_tasks ORDER BY scheduled_for", ())

    def clear(self) -> None:
        with self._lock:
            self._db.execute("DELETE FROM scheduled_tasks")
            self._db.commit()

    # --- Internal ---

    def _next_due_row(self) -> sqlite3.Row | None:
        return self._db.execute(
            """SELECT * FROM scheduled_tasks
               WHERE status = 'pending' AND scheduled_for <= ?
               ORDER BY priority DESC, scheduled_for ASC
               LIMIT 1""",
            (_ts(self._clock.now()),),
        ).fetchone()

    def _mark_running(self, id: str) -> bool:
        now = _ts(self._clock.now())
        existing = self.find_by_id(id)
        if existing is None:
            return False
        audit = existing.audit.model_copy(update={"updated_at": self._clock.now()})
        cursor = self._db.execute(
            """UPDATE scheduled_tasks
               SET status = 'running', executed_at = COALESCE(executed_at, ?), audit = ?
               WHERE id = ? AND status = 'pending'""",
            (now, audit.model_dump_json(), id),
        )
        self._db.commit()
        return cursor.rowcount > 0

    def _raise_stale(
        self, id: str, expected_status: TaskStatus | None, target: TaskStatus | None = None
    ) -> None:
        current = self.find_by_id(id)
        if current is None:
            raise TaskNotFoundError(id)
        ensure_status(current, expected_status, target)

    def _query(self, sql: str, params: Any) -> list[ScheduledTask]:
        with self._lock:
            rows = self._db.execute(sql, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    def _task_to_row(self, task: ScheduledTask) -> dict[str, Any]:
        data = task.model_dump(mode="json")
        row: dict[str, Any] = {}
        for key, value in data.items():
            if key in _JSON_COLUMNS:
                row[key] = json.dumps(value) if value is not None else None
            elif key in _TIME_COLUMNS:
                row[key] = _ts(getattr(task, key))
            else:
                row[key] = value
        return row

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        result = json.loads(row["result"]) if row["result"] else None
        return ScheduledTask(
            id=row["id"],
            owner_id=row["owner_id"],
            task_type=row["task_type"],
            target_id=row["target_id"],
            scheduled_for=row["scheduled_for"],
            status=row["status"],
            priority=row["priority"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            last_error=row["last_error"],
            executed_at=row["executed_at"],
            completed_at=row["completed_at"],
            result=TaskExecutionResult.model_validate(result) if result else None,
            metadata=json.loads(row["metadata"] or "{}"),
            audit=AuditInfo.model_validate_json(row["audit"]),
        )
