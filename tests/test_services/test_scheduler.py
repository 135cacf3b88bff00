"""
Tests for the Background Scheduler

Tests cover:
- Task registration and enable/disable
- Start/stop lifecycle
- Failure counting and auto-disable
- Manual runs and reset
- Execution queue wiring
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from daogov.services.scheduler import (
    MAX_CONSECUTIVE_FAILURES,
    BackgroundScheduler,
    ScheduledTask,
    setup_scheduler,
)


@pytest.fixture
def scheduler():
    return BackgroundScheduler(stagger_seconds=0)


class TestRegistration:
    """Tests for task registration."""

    def test_register(self, scheduler):
        scheduler.register("job", AsyncMock(), interval_seconds=5)

        stats = scheduler.get_stats()
        assert stats["tasks_registered"] == 1
        assert stats["tasks"]["job"]["interval_seconds"] == 5
        assert stats["tasks"]["job"]["enabled"] is True

    def test_duplicate_ignored(self, scheduler):
        scheduler.register("job", AsyncMock(), interval_seconds=5)
        scheduler.register("job", AsyncMock(), interval_seconds=99)

        assert scheduler.get_stats()["tasks_registered"] == 1
        assert scheduler.get_stats()["tasks"]["job"]["interval_seconds"] == 5

    def test_enable_disable(self, scheduler):
        scheduler.register("job", AsyncMock(), interval_seconds=5)

        assert scheduler.disable_task("job") is True
        assert scheduler.get_stats()["tasks"]["job"]["enabled"] is False
        assert scheduler.enable_task("job") is True
        assert scheduler.enable_task("unknown") is False


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_runs_task_and_stops(self, scheduler):
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler.register("job", job, interval_seconds=60)
        await scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=1)
        await scheduler.stop()

        assert scheduler.is_running is False
        assert scheduler.get_stats()["total_runs"] >= 1

    @pytest.mark.asyncio
    async def test_disabled_task_not_started(self, scheduler):
        func = AsyncMock()
        scheduler.register("job", func, interval_seconds=60, enabled=False)

        await scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()

        func.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, scheduler):
        await scheduler.stop()

        assert scheduler.is_running is False


class TestFailures:
    """Tests for failure tracking."""

    @pytest.mark.asyncio
    async def test_auto_disable_after_repeated_failures(self, scheduler):
        func = AsyncMock(side_effect=RuntimeError("database down"))
        task = ScheduledTask(name="job", func=func, interval_seconds=0)
        scheduler._tasks["job"] = task

        await asyncio.wait_for(scheduler._task_loop(task), timeout=2)

        assert func.await_count == MAX_CONSECUTIVE_FAILURES
        assert task.auto_disabled is True
        assert task.enabled is False
        assert task.last_error == "database down"
        assert scheduler.get_auto_disabled_tasks() == ["job"]

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, scheduler):
        func = AsyncMock(side_effect=[RuntimeError("blip"), None])
        scheduler.register("job", func, interval_seconds=60)

        assert await scheduler.run_task_now("job") is False
        assert await scheduler.run_task_now("job") is True

        stats = scheduler.get_stats()["tasks"]["job"]
        assert stats["error_count"] == 1
        assert stats["consecutive_failures"] == 0
        assert stats["run_count"] == 1

    @pytest.mark.asyncio
    async def test_run_unknown_task(self, scheduler):
        assert await scheduler.run_task_now("missing") is False

    def test_reset(self, scheduler):
        scheduler.register("job", AsyncMock(), interval_seconds=60)
        task = scheduler._tasks["job"]
        task.auto_disabled = True
        task.enabled = False
        task.consecutive_failures = MAX_CONSECUTIVE_FAILURES

        assert scheduler.reset_task("job") is True
        assert task.auto_disabled is False
        assert task.enabled is True
        assert task.consecutive_failures == 0
        assert scheduler.reset_task("missing") is False


class TestSetupScheduler:
    """Tests for wiring the execution queue processor."""

    @pytest.mark.asyncio
    async def test_disabled_registers_nothing(self, scheduler, settings, mock_db_client):
        result = await setup_scheduler(mock_db_client, settings=settings, scheduler=scheduler)

        assert result is scheduler
        assert scheduler.get_stats()["tasks_registered"] == 0

    @pytest.mark.asyncio
    async def test_registers_execution_queue(self, scheduler, settings, mock_db_client):
        enabled = settings.model_copy(
            update={"scheduler_enabled": True, "execution_poll_interval_seconds": 15}
        )

        await setup_scheduler(mock_db_client, settings=enabled, scheduler=scheduler)

        stats = scheduler.get_stats()
        assert stats["tasks"]["execution_queue"]["interval_seconds"] == 15

    @pytest.mark.asyncio
    async def test_task_processes_due_executions(self, scheduler, settings, mock_db_client):
        enabled = settings.model_copy(update={"scheduler_enabled": True})
        queue = MagicMock()
        queue.process_due_executions = AsyncMock()

        await setup_scheduler(mock_db_client, settings=enabled, scheduler=scheduler)
        with patch(
            "daogov.services.execution_queue.build_execution_queue", return_value=queue
        ) as build:
            assert await scheduler.run_task_now("execution_queue") is True

        build.assert_called_once_with(mock_db_client, enabled)
        queue.process_due_executions.assert_awaited_once()
