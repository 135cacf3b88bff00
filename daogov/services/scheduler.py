"""
Background Scheduler Service

Runs periodic background work for the governance service:
- Processing due proposal executions once their timelock has expired

Uses asyncio for lightweight scheduling without external dependencies.
"""

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from daogov.config import Settings, get_settings
from daogov.database.client import Neo4jClient
from daogov.monitoring.logging import log_duration

logger = structlog.get_logger(__name__)

# Maximum consecutive failures before auto-disabling a task
MAX_CONSECUTIVE_FAILURES = 10


@dataclass
class ScheduledTask:
    """A scheduled background task."""

    name: str
    func: Callable[[], Coroutine[Any, Any, Any]]
    interval_seconds: float
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    auto_disabled: bool = False


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    tasks_registered: int = 0
    total_runs: int = 0
    total_errors: int = 0
    is_running: bool = False


class BackgroundScheduler:
    """
    Lightweight asyncio-based background scheduler.

    Runs periodic tasks without blocking the main event loop.
    """

    def __init__(self, stagger_seconds: int = 10) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._running_tasks: dict[str, asyncio.Task[None]] = {}
        self._stats = SchedulerStats()
        self._shutdown_event = asyncio.Event()
        self._stagger_seconds = stagger_seconds
        self._logger = logger.bind(service="scheduler")

    @property
    def is_running(self) -> bool:
        return self._stats.is_running

    def register(
        self,
        name: str,
        func: Callable[[], Coroutine[Any, Any, Any]],
        interval_seconds: float,
        enabled: bool = True,
    ) -> None:
        """
        Register a scheduled task.

        Args:
            name: Unique task name
            func: Async function to execute
            interval_seconds: Interval between executions
            enabled: Whether the task is enabled
        """
        if name in self._tasks:
            self._logger.warning("task_already_registered", name=name)
            return

        self._tasks[name] = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            enabled=enabled,
        )
        self._stats.tasks_registered += 1
        self._logger.info(
            "task_registered",
            name=name,
            interval_seconds=interval_seconds,
            enabled=enabled,
        )

    def enable_task(self, name: str) -> bool:
        if name in self._tasks:
            self._tasks[name].enabled = True
            return True
        return False

    def disable_task(self, name: str) -> bool:
        if name in self._tasks:
            self._tasks[name].enabled = False
            return True
        return False

    async def start(self) -> None:
        """Start the scheduler and all enabled tasks."""
        if self._stats.is_running:
            self._logger.warning("scheduler_already_running")
            return

        self._stats.is_running = True
        self._stats.started_at = datetime.now(UTC)
        self._shutdown_event.clear()

        self._logger.info(
            "scheduler_starting",
            tasks=len(self._tasks),
            enabled=[n for n, t in self._tasks.items() if t.enabled],
        )

        for name, task in self._tasks.items():
            if task.enabled:
                self._running_tasks[name] = asyncio.create_task(
                    self._task_loop(task),
                    name=f"scheduler_{name}",
                )

    async def stop(self) -> None:
        """Stop the scheduler, cancelling every task loop."""
        if not self._stats.is_running:
            return

        self._logger.info("scheduler_stopping")
        self._shutdown_event.set()

        for task in list(self._running_tasks.values()):
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._running_tasks.clear()
        self._stats.is_running = False
        self._logger.info("scheduler_stopped")

    async def _task_loop(self, task: ScheduledTask) -> None:
        """
        Run a task in a loop with the specified interval.

        Errors are counted and logged; the loop keeps going until
        MAX_CONSECUTIVE_FAILURES is reached, then the task is auto-disabled.
        """
        self._logger.info(
            "task_loop_starting",
            name=task.name,
            interval=task.interval_seconds,
        )

        # Stagger task starts
        if self._stagger_seconds > 0:
            await asyncio.sleep(hash(task.name) % self._stagger_seconds)

        while not self._shutdown_event.is_set():
            if task.auto_disabled:
                self._logger.warning(
                    "task_auto_disabled_skipping",
                    name=task.name,
                    consecutive_failures=task.consecutive_failures,
                )
                break

            try:
                await task.func()
                self._record_success(task)
                self._logger.debug(
                    "task_executed",
                    name=task.name,
                    run_count=task.run_count,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:  # Intentional broad catch: prevents background task death
                self._record_failure(task, e)
                self._logger.error(
                    "task_error",
                    name=task.name,
                    error=str(e),
                    error_count=task.error_count,
                    consecutive_failures=task.consecutive_failures,
                )

                if task.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    task.auto_disabled = True
                    task.enabled = False
                    self._logger.critical(
                        "task_auto_disabled",
                        name=task.name,
                        consecutive_failures=task.consecutive_failures,
                        last_error=task.last_error,
                        message="Task auto-disabled after repeated failures. Check database connectivity.",
                    )
                    break

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=task.interval_seconds,
                )
                break
            except TimeoutError:
                pass

        self._running_tasks.pop(task.name, None)

    def _record_success(self, task: ScheduledTask) -> None:
        task.last_run = datetime.now(UTC)
        task.run_count += 1
        task.consecutive_failures = 0
        self._stats.total_runs += 1

    def _record_failure(self, task: ScheduledTask, error: Exception) -> None:
        task.error_count += 1
        task.consecutive_failures += 1
        task.last_error = str(error)
        self._stats.total_errors += 1

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self._stats.is_running,
            "started_at": self._stats.started_at.isoformat() if self._stats.started_at else None,
            "tasks_registered": self._stats.tasks_registered,
            "total_runs": self._stats.total_runs,
            "total_errors": self._stats.total_errors,
            "tasks": {
                name: {
                    "enabled": task.enabled,
                    "interval_seconds": task.interval_seconds,
                    "last_run": task.last_run.isoformat() if task.last_run else None,
                    "run_count": task.run_count,
                    "error_count": task.error_count,
                    "consecutive_failures": task.consecutive_failures,
                    "auto_disabled": task.auto_disabled,
                    "last_error": task.last_error,
                }
                for name, task in self._tasks.items()
            },
        }

    async def run_task_now(self, name: str) -> bool:
        """Manually trigger a task to run immediately."""
        if name not in self._tasks:
            return False

        task = self._tasks[name]
        try:
            await task.func()
        except Exception as e:  # Intentional broad catch: manual runs report, never raise
            self._record_failure(task, e)
            self._logger.error("manual_task_error", name=name, error=str(e))
            return False

        self._record_success(task)
        return True

    def reset_task(self, name: str) -> bool:
        """
        Reset a task's failure counters and re-enable it if auto-disabled.

        Restarts the task loop when the scheduler is running.
        """
        if name not in self._tasks:
            return False

        task = self._tasks[name]
        task.consecutive_failures = 0
        task.auto_disabled = False
        task.enabled = True
        task.last_error = None

        self._logger.info("task_reset", name=name)

        if self._stats.is_running and name not in self._running_tasks:
            self._running_tasks[name] = asyncio.create_task(
                self._task_loop(task),
                name=f"scheduler_{name}",
            )

        return True

    def get_auto_disabled_tasks(self) -> list[str]:
        return [name for name, task in self._tasks.items() if task.auto_disabled]


# Global scheduler instance
_scheduler: BackgroundScheduler | None = None


def get_scheduler() -> BackgroundScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler()
    return _scheduler


async def setup_scheduler(
    db_client: Neo4jClient,
    settings: Settings | None = None,
    scheduler: BackgroundScheduler | None = None,
) -> BackgroundScheduler:
    """
    Set up the scheduler with the execution queue processor.

    ``db_client`` is the connected Neo4jClient the processor's repositories
    run against.
    """
    settings = settings or get_settings()
    scheduler = scheduler or get_scheduler()

    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled")
        return scheduler

    scheduler.register(
        name="execution_queue",
        func=_create_execution_queue_task(db_client, settings),
        interval_seconds=settings.execution_poll_interval_seconds,
        enabled=True,
    )
    return scheduler


def _create_execution_queue_task(
    db_client: Neo4jClient,
    settings: Settings,
) -> Callable[[], Coroutine[Any, Any, None]]:
    """Create the task that runs every execution whose timelock has expired."""

    async def task() -> None:
        from daogov.services.execution_queue import build_execution_queue

        queue = build_execution_queue(db_client, settings)
        with log_duration(logger, "scheduled_execution_pass"):
            await queue.process_due_executions()

    return task
