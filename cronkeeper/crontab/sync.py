"""CrontabSyncService — reconciles the task table with the OS crontab.

The two sides have no shared transaction.  The crontab can be edited by a
human at any time, so every operation reads it fresh, correlates entries
with tasks through the ``crontab_id`` marker, and writes it back as one
guarded replacement.

Direction matters: import lets the crontab win on conflicts (it is the
side people edit by hand) and export lets the database win.  Running them
back to back in ``full_sync`` therefore converges instead of oscillating.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cronkeeper.crontab.entries import CrontabEntry, content_hash, generate_crontab_id
from cronkeeper.crontab.results import (
    Discrepancy,
    DiscrepancyKind,
    ImportResult,
    SyncResult,
    SyncStatus,
    ValidationResult,
)
from cronkeeper.errors import (
    CrontabEntryNotFoundError,
    CrontabError,
    InvalidScheduleError,
    NotSyncedError,
    SyncError,
    TaskNotFoundError,
)
from cronkeeper.scheduler.cron import validate_cron
from cronkeeper.scheduler.models import Task, TaskSource, utc_now

if TYPE_CHECKING:
    from cronkeeper.crontab.accessor import CrontabAccessor
    from cronkeeper.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

_IMPORTED_NAME_CHARS = 50


def _default_name(entry: CrontabEntry) -> str:
    return entry.comment or f"Imported: {entry.command[:_IMPORTED_NAME_CHARS]}"


class CrontabSyncService:
    """Import, export, validate and unlink tasks against the user's crontab.

    This service is the only writer of a task's sync fields and of the
    managed entries in the crontab.

    Args:
        store: TaskStore holding the task rows.
        accessor: CrontabAccessor for the crontab text.
    """

    def __init__(self, store: TaskStore, accessor: CrontabAccessor) -> None:
        self._store = store
        self._accessor = accessor

    # -- Import ------------------------------------------------------------------

    async def import_from_crontab(self) -> ImportResult:
        """Pull crontab entries into the task table (crontab wins).

        Per-entry failures are recorded in ``errors`` and do not stop the
        batch.  Foreign lines that become tasks are tagged with their new id
        in a single guarded write at the end.

        Raises:
            CrontabError: If the crontab cannot be read.
        """
        result = ImportResult()
        snapshot = await self._accessor.read_snapshot()
        tasks = await self._store.get_all_tasks()
        by_crontab_id = {t.crontab_id: t for t in tasks if t.crontab_id}
        adopted: list[tuple[int, Task, str]] = []

        for index, entry in enumerate(snapshot.entries):
            try:
                if entry.id is not None:
                    await self._import_managed(entry.id, entry, by_crontab_id, result)
                    continue
                crontab_id = generate_crontab_id()
                task = await self._import_foreign(entry, crontab_id, tasks, result)
                if task is not None:
                    tasks.append(task)
                    adopted.append((index, task, crontab_id))
            except Exception as e:
                logger.warning("Failed to import crontab entry %s: %s", entry.id or entry.command, e)
                result.errors.append(f"Failed to import entry {entry.id or entry.command}: {e}")
                result.skipped += 1

        if adopted:
            await self._tag_adopted(snapshot.entries, snapshot.content_hash, adopted, result)

        logger.info(
            "Crontab import: %d imported, %d updated, %d skipped, %d error(s)",
            result.imported,
            result.updated,
            result.skipped,
            len(result.errors),
        )
        return result

    async def _import_managed(
        self,
        crontab_id: str,
        entry: CrontabEntry,
        by_crontab_id: dict[str, Task],
        result: ImportResult,
    ) -> None:
        existing = by_crontab_id.get(crontab_id)
        if existing is None:
            task = await self._store.create_task(
                name=_default_name(entry),
                cron_schedule=entry.schedule,
                command=entry.command,
                is_system_managed=True,
                crontab_id=crontab_id,
                synced_to_crontab=True,
                crontab_synced_at=utc_now(),
                source=TaskSource.NATIVE,
            )
            by_crontab_id[crontab_id] = task
            result.imported += 1
            return

        if existing.cron_schedule == entry.schedule and existing.command == entry.command:
            result.skipped += 1
            return

        updated = await self._store.update_task(
            existing.id,
            cron_schedule=entry.schedule,
            command=entry.command,
            crontab_synced_at=utc_now(),
        )
        if updated is None:
            raise TaskNotFoundError(existing.id)
        by_crontab_id[crontab_id] = updated
        logger.info("Task %d updated from crontab entry %s", existing.id, crontab_id)
        result.updated += 1

    async def _import_foreign(
        self,
        entry: CrontabEntry,
        crontab_id: str,
        tasks: list[Task],
        result: ImportResult,
    ) -> Task | None:
        """Create a task for an unmarked crontab line, unless one already covers it."""
        for task in tasks:
            if task.is_system_managed and task.cron_schedule == entry.schedule and task.command == entry.command:
                result.skipped += 1
                return None

        task = await self._store.create_task(
            name=_default_name(entry),
            cron_schedule=entry.schedule,
            command=entry.command,
            is_system_managed=True,
            crontab_id=crontab_id,
            source=TaskSource.IMPORTED,
        )
        result.imported += 1
        return task

    async def _tag_adopted(
        self,
        entries: list[CrontabEntry],
        expected_hash: str,
        adopted: list[tuple[int, Task, str]],
        result: ImportResult,
    ) -> None:
        """Write id markers for newly adopted foreign lines, then mark them synced."""
        tagged = list(entries)
        for index, task, crontab_id in adopted:
            tagged[index] = CrontabEntry(
                id=crontab_id,
                schedule=task.cron_schedule,
                command=task.command,
                comment=task.name,
            )
        try:
            await self._accessor.write_user_crontab(tagged, expected_hash)
        except CrontabError as e:
            # Tasks stay unsynced; the next export adopts the lines instead.
            result.errors.append(f"Failed to tag imported crontab entries: {e}")
            return

        now = utc_now()
        for _, task, _ in adopted:
            await self._store.update_task(task.id, synced_to_crontab=True, crontab_synced_at=now)

    # -- Export ------------------------------------------------------------------

    async def export_to_crontab(self, task_ids: list[int] | None = None) -> SyncResult:
        """Push task rows into the crontab (database wins).

        Exports the given *task_ids* (an empty list selects nothing), or every
        system-managed task when *task_ids* is None.  All entry changes are
        applied to one snapshot and written once; nothing is written when
        the rendered crontab is already identical.

        Raises:
            CrontabError: If the crontab cannot be read or written.
        """
        result = SyncResult()
        tasks = await self._select_tasks(task_ids, result)
        snapshot = await self._accessor.read_snapshot()
        entries = list(snapshot.entries)

        placed: list[tuple[Task, str]] = []
        for task in tasks:
            try:
                placed.append((task, _place(task, entries)))
            except Exception as e:
                logger.warning("Failed to export task %d: %s", task.id, e)
                result.errors.append(f"Failed to export task {task.id}: {e}")
                result.failed += 1

        if placed and content_hash(self._accessor.render(entries)) != snapshot.content_hash:
            await self._accessor.write_user_crontab(entries, snapshot.content_hash)

        now = utc_now()
        for task, crontab_id in placed:
            try:
                await self._store.update_task(
                    task.id,
                    crontab_id=crontab_id,
                    synced_to_crontab=True,
                    crontab_synced_at=now,
                )
            except Exception as e:
                logger.warning("Failed to record sync state for task %d: %s", task.id, e)
                result.errors.append(f"Failed to export task {task.id}: {e}")
                result.failed += 1
                continue
            result.exported += 1

        logger.info(
            "Crontab export: %d exported, %d failed", result.exported, result.failed
        )
        return result

    async def _select_tasks(self, task_ids: list[int] | None, result: SyncResult) -> list[Task]:
        if task_ids is None:
            return [t for t in await self._store.get_all_tasks() if t.is_system_managed]

        tasks: list[Task] = []
        for task_id in task_ids:
            task = await self._store.get_task(task_id)
            if task is None:
                result.errors.append(f"Failed to export task {task_id}: not found")
                result.failed += 1
                continue
            tasks.append(task)
        return tasks

    # -- Full sync -----------------------------------------------------------------

    async def full_sync(self) -> SyncResult:
        """Import then export; an import failure does not block the export."""
        result = SyncResult()
        try:
            imported = await self.import_from_crontab()
        except CrontabError as e:
            result.errors.append(f"Import failed: {e}")
        else:
            result.imported = imported.imported
            result.updated = imported.updated
            result.errors.extend(imported.errors)

        exported = await self.export_to_crontab()
        result.exported = exported.exported
        result.failed = exported.failed
        result.errors.extend(exported.errors)
        return result

    # -- Validation ----------------------------------------------------------------

    async def validate_sync(self) -> ValidationResult:
        """Cross-check both sides without changing either."""
        result = ValidationResult()
        try:
            tasks = await self._store.get_all_tasks()
            entries = await self._accessor.read_user_crontab()
        except Exception as e:
            result.discrepancies.append(
                Discrepancy(
                    kind=DiscrepancyKind.MISSING_IN_CRONTAB,
                    details=f"Validation error: {e}",
                )
            )
            return result

        entries_by_id = {e.id: e for e in entries if e.is_managed}
        known_ids = {t.crontab_id for t in tasks if t.crontab_id}

        for task in tasks:
            if task.is_system_managed:
                result.discrepancies.extend(_check_task(task, entries_by_id))

        for crontab_id, entry in entries_by_id.items():
            if crontab_id not in known_ids:
                result.discrepancies.append(
                    Discrepancy(
                        kind=DiscrepancyKind.MISSING_IN_DB,
                        crontab_id=crontab_id,
                        details=(
                            f'Crontab entry "{entry.command}" (ID: {crontab_id}) '
                            "not found in database"
                        ),
                    )
                )
        return result

    # -- Point operations ------------------------------------------------------------

    async def remove_from_crontab(self, task_id: int) -> Task:
        """Delete a task's crontab entry and clear its sync fields. The task stays.

        Raises:
            TaskNotFoundError: If the task does not exist.
            NotSyncedError: If the task has no crontab id.
            SyncError: If the crontab could not be rewritten.
        """
        task = await self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.crontab_id is None:
            raise NotSyncedError(task_id)

        try:
            await self._accessor.remove_crontab_entry(task.crontab_id)
        except CrontabEntryNotFoundError:
            logger.warning("Crontab entry %s already gone for task %d", task.crontab_id, task_id)
        except CrontabError as e:
            msg = f"Failed to remove from crontab: {e}"
            raise SyncError(msg) from e

        updated = await self._store.update_task(
            task_id,
            crontab_id=None,
            synced_to_crontab=False,
            crontab_synced_at=None,
        )
        if updated is None:
            raise TaskNotFoundError(task_id)
        logger.info("Removed task %d from crontab", task_id)
        return updated

    async def sync_status(self) -> SyncStatus:
        entries = await self._accessor.read_user_crontab()
        managed = [t for t in await self._store.get_all_tasks() if t.is_system_managed]
        synced = [t for t in managed if t.synced_to_crontab]
        stamps = [t.crontab_synced_at for t in synced if t.crontab_synced_at]
        managed_entries = sum(1 for e in entries if e.is_managed)
        return SyncStatus(
            crontab_entry_count=len(entries),
            managed_entry_count=managed_entries,
            unmanaged_entry_count=len(entries) - managed_entries,
            system_managed_count=len(managed),
            synced_count=len(synced),
            unsynced_count=len(managed) - len(synced),
            last_sync=max(stamps) if stamps else None,
        )


def _place(task: Task, entries: list[CrontabEntry]) -> str:
    """Put *task*'s entry into *entries* in place. Returns its crontab id.

    Order of preference: the entry already carrying the task's id, then an
    identical foreign line (adopted), then a new entry at the end.
    """
    if not task.is_system_managed:
        msg = f"Task {task.id} is not system-managed"
        raise SyncError(msg)
    if not validate_cron(task.cron_schedule):
        raise InvalidScheduleError(task.cron_schedule)
    if "\n" in task.command or "\r" in task.command:
        msg = f"Task {task.id} command spans multiple lines"
        raise SyncError(msg)

    crontab_id = task.crontab_id or generate_crontab_id()
    entry = CrontabEntry(
        id=crontab_id,
        schedule=" ".join(task.cron_schedule.split()),
        command=task.command.strip(),
        comment=task.name,
    )
    for index, existing in enumerate(entries):
        if existing.id == crontab_id:
            entries[index] = entry
            return crontab_id
    for index, existing in enumerate(entries):
        if not existing.is_managed and existing.same_job(entry):
            entries[index] = entry
            return crontab_id
    entries.append(entry)
    return crontab_id


def _check_task(task: Task, entries_by_id: dict[str, CrontabEntry]) -> list[Discrepancy]:
    if task.crontab_id is None:
        return [
            Discrepancy(
                kind=DiscrepancyKind.MISSING_IN_CRONTAB,
                task_id=task.id,
                details=(
                    f'Task "{task.name}" (ID: {task.id}) is marked as system-managed '
                    "but has no crontab ID"
                ),
            )
        ]

    entry = entries_by_id.get(task.crontab_id)
    if entry is None:
        return [
            Discrepancy(
                kind=DiscrepancyKind.MISSING_IN_CRONTAB,
                task_id=task.id,
                crontab_id=task.crontab_id,
                details=(
                    f'Task "{task.name}" (ID: {task.id}) has crontab ID '
                    "but entry not found in crontab"
                ),
            )
        ]

    found: list[Discrepancy] = []
    if entry.schedule != task.cron_schedule:
        found.append(
            Discrepancy(
                kind=DiscrepancyKind.SCHEDULE_MISMATCH,
                task_id=task.id,
                crontab_id=task.crontab_id,
                details=(
                    f'Schedule mismatch: DB has "{task.cron_schedule}", '
                    f'crontab has "{entry.schedule}"'
                ),
            )
        )
    if entry.command != task.command:
        found.append(
            Discrepancy(
                kind=DiscrepancyKind.COMMAND_MISMATCH,
                task_id=task.id,
                crontab_id=task.crontab_id,
                details=(
                    f'Command mismatch: DB has "{task.command}", '
                    f'crontab has "{entry.command}"'
                ),
            )
        )
    return found
