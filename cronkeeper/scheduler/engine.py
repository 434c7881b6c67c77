"""SchedulerEngine — APScheduler lifecycle and the task-id to timer map."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cronkeeper.config import settings
from cronkeeper.errors import InvalidScheduleError
from cronkeeper.scheduler.cron import build_trigger
from cronkeeper.scheduler.models import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from apscheduler.job import Job

    from cronkeeper.scheduler.executor import TaskExecutor
    from cronkeeper.scheduler.models import Task
    from cronkeeper.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

INTERRUPTED_OUTPUT = "Interrupted by restart"


def _job_id(task_id: int) -> str:
    return f"task-{task_id}"


class SchedulerEngine:
    """Maps tasks to APScheduler cron jobs.

    This class is the only owner of the timer map: nothing else starts or
    stops jobs.  A schedule change is always unschedule + schedule, so a
    job never fires with a stale command.

    Args:
        store: TaskStore to load tasks from on startup.
        executor: TaskExecutor that runs a task when its job fires.
        timezone: IANA timezone for cron evaluation (default from settings).
    """

    def __init__(
        self,
        store: TaskStore,
        executor: TaskExecutor,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._jobs: dict[int, Job] = {}
        self._periodic: dict[str, Job] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scheduled_count(self) -> int:
        return len(self._jobs)

    def is_scheduled(self, task_id: int) -> bool:
        return task_id in self._jobs

    def next_run_time(self, task_id: int) -> datetime | None:
        """Next fire time of a task's job (None before the scheduler starts)."""
        job = self._jobs.get(task_id)
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Recover interrupted runs, arm every idle task, and start the scheduler."""
        interrupted = await self.recover_interrupted()
        armed = await self._arm_all(skip=interrupted)
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started with %d task(s) (tz=%s, %d interrupted)",
            armed,
            self._timezone,
            len(interrupted),
        )

    async def stop(self) -> None:
        """Shut down the scheduler and drop every timer."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")
        self._jobs.clear()
        self._periodic.clear()

    async def recover_interrupted(self) -> set[int]:
        """Mark tasks left ``running`` by a previous process as failed.

        Returns the ids of those tasks.  They are not re-armed during this
        boot: their command may still be alive outside this process.
        """
        interrupted: set[int] = set()
        for task in await self._store.list_tasks_by_status(TaskStatus.RUNNING):
            if self._executor.is_running(task.id):
                continue
            await self._store.update_task(
                task.id, status=TaskStatus.FAILED, output=INTERRUPTED_OUTPUT
            )
            interrupted.add(task.id)
            logger.warning("Task %d was interrupted by a restart, marked failed", task.id)
        return interrupted

    async def reload(self) -> int:
        """Drop every task timer and re-arm from the store. Returns the count."""
        for task_id in list(self._jobs):
            self.unschedule_task(task_id)
        armed = await self._arm_all()
        logger.info("Reloaded %d task(s)", armed)
        return armed

    # -- Task management -------------------------------------------------------

    def schedule_task(self, task: Task) -> None:
        """Arm (or re-arm) the timer for *task*.

        Raises:
            InvalidScheduleError: If the cron expression does not validate;
                any existing timer for the task is left untouched.
        """
        try:
            trigger = build_trigger(task.cron_schedule, self._timezone)
        except InvalidScheduleError:
            logger.error("Invalid cron schedule for task %d: %s", task.id, task.cron_schedule)
            raise

        self.unschedule_task(task.id)
        snapshot = replace(task)
        self._jobs[task.id] = self._scheduler.add_job(
            self._fire,
            trigger=trigger,
            id=_job_id(task.id),
            name=task.name,
            args=[snapshot],
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        logger.info(
            "Scheduled task: %s (%d) with schedule: %s", task.name, task.id, task.cron_schedule
        )

    def unschedule_task(self, task_id: int) -> None:
        """Stop and release the timer for *task_id*; no-op if there is none."""
        job = self._jobs.pop(task_id, None)
        if job is None:
            return
        self._scheduler.remove_job(job.id)
        logger.info("Unscheduled task ID: %d", task_id)

    def schedule_periodic(
        self,
        job_id: str,
        callback: Callable[[], Awaitable[object]],
        minutes: int,
    ) -> None:
        """Arm a fixed-interval maintenance job (e.g. periodic crontab sync)."""
        old = self._periodic.pop(job_id, None)
        if old is not None:
            self._scheduler.remove_job(old.id)
        self._periodic[job_id] = self._scheduler.add_job(
            callback,
            trigger=IntervalTrigger(minutes=minutes, timezone=self._timezone),
            id=job_id,
            name=job_id,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled periodic job %s every %d minute(s)", job_id, minutes)

    # -- Internal --------------------------------------------------------------

    async def _arm_all(self, skip: set[int] | None = None) -> int:
        skip = skip or set()
        armed = 0
        for task in await self._store.get_all_tasks():
            if task.id in skip:
                continue
            # A live run in this process is fine; a leftover one is not.
            if task.status is TaskStatus.RUNNING and not self._executor.is_running(task.id):
                continue
            try:
                self.schedule_task(task)
            except InvalidScheduleError:
                continue
            armed += 1
        return armed

    async def _fire(self, task: Task) -> None:
        """Callback invoked by APScheduler. Delegates to the executor."""
        logger.info("Running scheduled task: %s (%d)", task.name, task.id)
        try:
            await self._executor.run_task(task)
        except Exception:
            logger.exception("Scheduled run of task %d could not start", task.id)
