from datetime import datetime, timedelta, timezone

import pytest

from geosched.infrastructure.clock import ManualClock
from geosched.infrastructure.database import AppDatabase
from geosched.scheduling.repository import InMemoryTaskStore
from geosched.scheduling.task_service import SchedulingService
from geosched.scheduling.types import CreateScheduledTaskInput, TaskType, UserRef

# A Monday.
START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def db(clock) -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase(clock)
    app_db._init_test()
    yield app_db
    app_db.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock, db):
    """Every store test runs against both backends."""
    if request.param == "memory":
        return InMemoryTaskStore(clock)
    return db.task_store


@pytest.fixture
def service(store, clock) -> SchedulingService:
    return SchedulingService(store, clock)


@pytest.fixture
def actor() -> UserRef:
    return UserRef(id="user-1", email="ops@example.com", display_name="Ops")


@pytest.fixture
def make_input(clock, actor):
    """Build a CreateScheduledTaskInput `minutes` after the current virtual time."""

    def _make(
        owner_id: str = "owner-1",
        minutes: float = 120,
        task_type: TaskType = TaskType.REDDIT_POST,
        **overrides,
    ) -> CreateScheduledTaskInput:
        fields = dict(
            owner_id=owner_id,
            task_type=task_type,
            target_id="post-1",
            scheduled_for=clock.now() + timedelta(minutes=minutes),
            created_by=actor,
        )
        fields.update(overrides)
        return CreateScheduledTaskInput(**fields)

    return _make
