"""Cronkeeper — constructs the core components once and exposes their operations.

The HTTP or CLI layer holds one ``Cronkeeper`` and calls it; no component
is a module-level singleton.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cronkeeper.config import settings
from cronkeeper.crontab.accessor import CrontabAccessor
from cronkeeper.crontab.sync import CrontabSyncService
from cronkeeper.errors import CrontabError, InvalidScheduleError, InvalidTaskError, TaskNotFoundError
from cronkeeper.notifications import LogChannel, NotificationRouter, WebhookChannel
from cronkeeper.scheduler.cron import validate_cron
from cronkeeper.scheduler.engine import SchedulerEngine
from cronkeeper.scheduler.executor import TaskExecutor
from cronkeeper.scheduler.store import TaskStore

if TYPE_CHECKING:
    import asyncio

    from cronkeeper.crontab.results import (
        ImportResult,
        SyncResult,
        SyncStatus,
        ValidationResult,
    )
    from cronkeeper.scheduler.models import ExecutionResult, Task

logger = logging.getLogger(__name__)

PERIODIC_SYNC_JOB_ID = "crontab-sync"
MAX_NAME_LENGTH = 100
_EDITABLE_FIELDS = frozenset({"name", "cron_schedule", "command", "is_system_managed"})


def build_router() -> NotificationRouter:
    """Register the notification channels enabled in settings."""
    router = NotificationRouter()
    router.register_channel(LogChannel())
    if settings.notify_webhook_url:
        router.register_channel(
            WebhookChannel(settings.notify_webhook_url, timeout=settings.notify_webhook_timeout)
        )
    logger.info("Notifications initialized: channels=%s", router.list_channels())
    return router


def normalize_schedule(expression: str) -> str:
    """Collapse whitespace and validate. Raises InvalidScheduleError."""
    schedule = " ".join(expression.split())
    if not validate_cron(schedule):
        raise InvalidScheduleError(expression)
    return schedule


def _check_name(name: str) -> str:
    name = name.strip()
    if not name:
        msg = "Task name is required"
        raise InvalidTaskError(msg)
    if len(name) > MAX_NAME_LENGTH:
        msg = "Task name too long"
        raise InvalidTaskError(msg)
    return name


def _check_command(command: str) -> str:
    command = command.strip()
    if not command:
        msg = "Command is required"
        raise InvalidTaskError(msg)
    return command


class Cronkeeper:
    """Owns the store, executor, scheduler, crontab accessor and sync service.

    Args:
        store: TaskStore (default: the configured database).
        accessor: CrontabAccessor (default: the configured crontab command).
        router: Notifier for finished runs (default: ``build_router()``).
        timezone: Scheduler timezone override.
        timeout_seconds: Per-run timeout override.
        output_limit: Stored output cap override.
        sync_interval_minutes: Periodic full sync interval; 0 disables it.
    """

    def __init__(
        self,
        *,
        store: TaskStore | None = None,
        accessor: CrontabAccessor | None = None,
        router: NotificationRouter | None = None,
        timezone: str | None = None,
        timeout_seconds: float | None = None,
        output_limit: int | None = None,
        sync_interval_minutes: int | None = None,
    ) -> None:
        self.store = store or TaskStore()
        self.router = router or build_router()
        self.executor = TaskExecutor(
            self.store,
            self.router,
            timeout_seconds=timeout_seconds,
            output_limit=output_limit,
        )
        self.engine = SchedulerEngine(self.store, self.executor, timezone=timezone)
        self.accessor = accessor or CrontabAccessor()
        self.sync = CrontabSyncService(self.store, self.accessor)
        if sync_interval_minutes is None:
            sync_interval_minutes = settings.crontab_sync_interval_minutes
        self._sync_interval = sync_interval_minutes

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        await self.engine.start()
        if self._sync_interval:
            self.engine.schedule_periodic(
                PERIODIC_SYNC_JOB_ID, self._periodic_sync, self._sync_interval
            )

    async def stop(self) -> None:
        """Stop the timers, then let in-flight runs finish recording."""
        await self.engine.stop()
        await self.executor.wait_idle()

    async def __aenter__(self) -> Cronkeeper:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- Tasks -----------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        return await self.store.get_all_tasks()

    async def get_task(self, task_id: int) -> Task:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def create_task(
        self,
        name: str,
        cron_schedule: str,
        command: str,
        *,
        is_system_managed: bool = False,
    ) -> Task:
        """Validate, persist and arm a new task."""
        task = await self.store.create_task(
            name=_check_name(name),
            cron_schedule=normalize_schedule(cron_schedule),
            command=_check_command(command),
            is_system_managed=is_system_managed,
        )
        self.engine.schedule_task(task)
        return task

    async def update_task(self, task_id: int, **fields: Any) -> Task:
        """Edit a task; re-arms its timer when the schedule, command or name changed.

        Turning ``is_system_managed`` off removes the task's crontab entry.
        """
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            msg = f"Cannot update task fields: {', '.join(sorted(unknown))}"
            raise InvalidTaskError(msg)
        if "name" in fields:
            fields["name"] = _check_name(fields["name"])
        if "cron_schedule" in fields:
            fields["cron_schedule"] = normalize_schedule(fields["cron_schedule"])
        if "command" in fields:
            fields["command"] = _check_command(fields["command"])

        existing = await self.get_task(task_id)
        if fields.get("is_system_managed") is False and existing.crontab_id is not None:
            await self.sync.remove_from_crontab(task_id)

        updated = await self.store.update_task(task_id, **fields)
        if updated is None:
            raise TaskNotFoundError(task_id)
        # The armed job carries a copy of the task, so any change it reports re-arms.
        if (
            updated.cron_schedule != existing.cron_schedule
            or updated.command != existing.command
            or updated.name != existing.name
        ):
            self.engine.schedule_task(updated)
        return updated

    async def delete_task(self, task_id: int) -> None:
        """Unschedule and delete a task, removing its crontab entry first."""
        task = await self.get_task(task_id)
        if task.crontab_id is not None:
            await self.sync.remove_from_crontab(task_id)
        self.engine.unschedule_task(task_id)
        if not await self.store.delete_task(task_id):
            raise TaskNotFoundError(task_id)

    async def run_task(self, task_id: int) -> asyncio.Task[ExecutionResult] | None:
        """Run a task now. Returns None if it is already running."""
        task = await self.get_task(task_id)
        return await self.executor.run_task(task)

    # -- Crontab ---------------------------------------------------------------

    async def import_from_crontab(self) -> ImportResult:
        result = await self.sync.import_from_crontab()
        if result.imported or result.updated:
            await self.engine.reload()
        return result

    async def export_to_crontab(self, task_ids: list[int] | None = None) -> SyncResult:
        return await self.sync.export_to_crontab(task_ids)

    async def full_sync(self) -> SyncResult:
        result = await self.sync.full_sync()
        if result.imported or result.updated:
            await self.engine.reload()
        return result

    async def validate_sync(self) -> ValidationResult:
        return await self.sync.validate_sync()

    async def remove_from_crontab(self, task_id: int) -> Task:
        return await self.sync.remove_from_crontab(task_id)

    async def sync_status(self) -> SyncStatus:
        return await self.sync.sync_status()

    async def _periodic_sync(self) -> None:
        try:
            result = await self.full_sync()
        except CrontabError:
            logger.exception("Periodic crontab sync failed")
            return
        if result.errors:
            logger.warning("Periodic crontab sync finished with %d error(s)", len(result.errors))
