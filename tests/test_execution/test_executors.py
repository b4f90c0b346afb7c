"""Tests for the executor registry."""

import pytest

from geosched.execution.executors import (
    ExecutorRegistry,
    LoggingExecutor,
    TaskExecutor,
    build_default_registry,
)
from geosched.scheduling.errors import UnknownTaskTypeError
from geosched.scheduling.types import ExecutionOutcome, TaskType


async def _noop(target_id, metadata):
    return ExecutionOutcome(success=True)


class TestExecutorRegistry:
    def test_register_and_get(self):
        registry = ExecutorRegistry()
        registry.register(TaskType.REDDIT_POST, _noop)
        assert registry.get(TaskType.REDDIT_POST) is _noop
        assert TaskType.REDDIT_POST in registry
        assert TaskType.ANALYTICS_SYNC not in registry

    def test_register_accepts_string_value(self):
        registry = ExecutorRegistry()
        registry.register("analytics_sync", _noop)
        assert registry.registered_types() == [TaskType.ANALYTICS_SYNC]

    def test_duplicate_rejected_unless_replace(self):
        registry = ExecutorRegistry()
        registry.register(TaskType.REDDIT_POST, _noop)
        with pytest.raises(ValueError):
            registry.register(TaskType.REDDIT_POST, _noop)

        other = LoggingExecutor(TaskType.REDDIT_POST, "other")
        registry.register(TaskType.REDDIT_POST, other, replace=True)
        assert registry.get(TaskType.REDDIT_POST) is other

    def test_unknown_type(self):
        with pytest.raises(UnknownTaskTypeError) as exc:
            ExecutorRegistry().get(TaskType.CONTENT_PUBLISH)
        assert exc.value.error == "Unknown task type: content_publish"
        assert exc.value.code == "UNKNOWN_TASK_TYPE"


class TestDefaultRegistry:
    def test_covers_every_task_type(self):
        registry = build_default_registry()
        assert set(registry.registered_types()) == set(TaskType)

    def test_executors_satisfy_protocol(self):
        registry = build_default_registry()
        assert all(isinstance(registry.get(t), TaskExecutor) for t in TaskType)

    @pytest.mark.asyncio
    async def test_logging_executor_succeeds(self):
        outcome = await LoggingExecutor(TaskType.CONTENT_PUBLISH, "Content published")("article-9", {})
        assert outcome.success is True
        assert outcome.message == "Content published"
        assert outcome.data == {"targetId": "article-9"}
