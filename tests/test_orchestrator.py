"""Tests for the orchestrator wiring."""

import pytest

from geosched.app import Orchestrator
from geosched.execution.executors import ExecutorRegistry, LoggingExecutor
from geosched.scheduling.repository import InMemoryTaskStore
from geosched.scheduling.sqlite_store import SqliteTaskStore
from geosched.scheduling.types import TaskStatus, TaskType


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_memory_backend(self, clock, make_input):
        orchestrator = Orchestrator(backend="memory", clock=clock)
        await orchestrator.start(interval_s=60)
        try:
            assert isinstance(orchestrator.service._store, InMemoryTaskStore)
            task = orchestrator.service.create_scheduled_task(make_input(minutes=1))
            clock.advance(minutes=1)
            result = await orchestrator.dispatcher.execute_next()
            assert result.success is True
            assert orchestrator.service.get_task_by_id(task.id).status == TaskStatus.COMPLETED
        finally:
            await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_sqlite_backend(self, clock, tmp_path, monkeypatch):
        monkeypatch.setattr("geosched.infrastructure.database.STORE_DIR", tmp_path)
        orchestrator = Orchestrator(backend="sqlite", clock=clock)
        await orchestrator.start(interval_s=60)
        assert isinstance(orchestrator.service._store, SqliteTaskStore)
        await orchestrator.shutdown()
        assert (tmp_path / "scheduler.db").exists()

    @pytest.mark.asyncio
    async def test_unknown_backend_falls_back_to_memory(self, clock):
        orchestrator = Orchestrator(backend="redis", clock=clock)
        await orchestrator.start(interval_s=60)
        try:
            assert isinstance(orchestrator.service._store, InMemoryTaskStore)
        finally:
            await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self):
        await Orchestrator(backend="memory").shutdown()

    @pytest.mark.asyncio
    async def test_task_type_without_executor_fails_into_retry(self, clock, make_input):
        registry = ExecutorRegistry()
        registry.register(TaskType.REDDIT_POST, LoggingExecutor(TaskType.REDDIT_POST, "posted"))
        orchestrator = Orchestrator(backend="memory", registry=registry, clock=clock)
        await orchestrator.start(interval_s=60)
        try:
            task = orchestrator.service.create_scheduled_task(
                make_input(minutes=1, task_type=TaskType.ANALYTICS_SYNC)
            )
            clock.advance(minutes=1)
            result = await orchestrator.dispatcher.execute_next()
            assert result.success is False
            assert orchestrator.service.get_task_by_id(task.id).retry_count == 1
        finally:
            await orchestrator.shutdown()
