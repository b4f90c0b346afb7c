"""SQLite database schema, migrations, and AppDatabase composition root."""

from __future__ import annotations

import sqlite3

from geosched.infrastructure.clock import Clock, SystemClock
from geosched.infrastructure.config import STORE_DIR
from geosched.infrastructure.logger import logger


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS scheduled_tasks (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            task_type TEXT NOT NULL,
            target_id TEXT NOT NULL,
            scheduled_for TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            priority INTEGER NOT NULL DEFAULT 0,
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            executed_at TEXT,
            completed_at TEXT,
            result TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            audit TEXT NOT NULL
        );
    """)

    # Indexes reference migrated columns
    _run_schema_migrations(db)

    db.executescript("""
        CREATE INDEX IF NOT EXISTS idx_tasks_owner ON scheduled_tasks(owner_id, scheduled_for);
        CREATE INDEX IF NOT EXISTS idx_tasks_status ON scheduled_tasks(status, scheduled_for);
    """)


def _run_schema_migrations(db: sqlite3.Connection) -> None:
    """Run ALTER TABLE migrations. Each is wrapped in try/except for idempotency."""

    # Rename the pre-multi-tenant column
    try:
        columns = {row[1] for row in db.execute("PRAGMA table_info(scheduled_tasks)")}
        if "customer_id" in columns and "owner_id" not in columns:
            db.execute("ALTER TABLE scheduled_tasks RENAME COLUMN customer_id TO owner_id")
            db.commit()
    except sqlite3.OperationalError:
        logger.warning("Could not migrate customer_id column")


class AppDatabase:
    """Composition root that initializes the DB and exposes the task store."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._db: sqlite3.Connection | None = None
        self._clock = clock or SystemClock()
        self.task_store: SqliteTaskStore | None = None  # type: ignore[name-defined]

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    def init(self) -> None:
        """Open (or create) the database file at the standard location."""
        db_path = STORE_DIR / "scheduler.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connect(str(db_path))
        logger.info("Database opened", path=str(db_path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._connect(":memory:")

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None

    def _connect(self, target: str) -> None:
        # Connection is shared by the store across worker threads; the store
        # serializes access with its own lock.
        self._db = sqlite3.connect(target, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        create_schema(self._db)

        # Import here to avoid circular imports
        from geosched.scheduling.sqlite_store import SqliteTaskStore

        self.task_store = SqliteTaskStore(self._db, self._clock)
