"""TaskStore — aiosqlite CRUD for tasks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aiosqlite

from cronkeeper.config import settings
from cronkeeper.scheduler.models import COLUMNS, Task, TaskStatus, to_column_value

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    cron_schedule TEXT NOT NULL,
    command TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    last_run TEXT,
    output TEXT,
    created_at TEXT NOT NULL,
    is_system_managed INTEGER NOT NULL DEFAULT 0,
    crontab_id TEXT,
    synced_to_crontab INTEGER NOT NULL DEFAULT 0,
    crontab_synced_at TEXT,
    source TEXT NOT NULL DEFAULT 'native'
)
"""

_CREATE_CRONTAB_INDEX = "CREATE INDEX IF NOT EXISTS idx_tasks_crontab_id ON tasks (crontab_id)"

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM tasks"  # noqa: S608
_UPDATABLE = frozenset(COLUMNS) - {"id"}


class TaskStore:
    """Persists tasks in SQLite.

    Pass an explicit *db_path* for test isolation (e.g.
    ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.execute(_CREATE_CRONTAB_INDEX)
            await db.commit()
            self._initialised = True
        return db

    async def _fetch_all(self, where: str = "", params: tuple = ()) -> list[Task]:
        db = await self._connect()
        try:
            cursor = await db.execute(f"{_SELECT} {where} ORDER BY id", params)
            rows = await cursor.fetchall()
            return [Task.from_row(tuple(row)) for row in rows]
        finally:
            await db.close()

    # -- CRUD ------------------------------------------------------------------

    async def create_task(self, **fields: Any) -> Task:
        """Insert a new task built from *fields*. Returns it with its id set."""
        fields.pop("id", None)
        task = Task(id=0, **fields)
        columns = COLUMNS[1:]
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"INSERT INTO tasks ({', '.join(columns)}) "  # noqa: S608
                f"VALUES ({', '.join('?' for _ in columns)})",
                task.to_row()[1:],
            )
            await db.commit()
            task.id = cursor.lastrowid
        finally:
            await db.close()
        logger.info("Created task: %s (%d)", task.name, task.id)
        return task

    async def get_task(self, task_id: int) -> Task | None:
        """Fetch a task by ID, or None if not found."""
        tasks = await self._fetch_all("WHERE id = ?", (task_id,))
        return tasks[0] if tasks else None

    async def get_all_tasks(self) -> list[Task]:
        """Return every task, oldest first."""
        return await self._fetch_all()

    async def list_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return await self._fetch_all("WHERE status = ?", (str(status),))

    async def find_by_crontab_id(self, crontab_id: str) -> Task | None:
        """Return the task correlated with a crontab entry, if any."""
        tasks = await self._fetch_all("WHERE crontab_id = ?", (crontab_id,))
        return tasks[0] if tasks else None

    async def update_task(self, task_id: int, **fields: Any) -> Task | None:
        """Apply a partial update. Returns the updated task, or None if missing.

        Raises:
            ValueError: If *fields* names an unknown or read-only column.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            msg = f"Cannot update task fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if not fields:
            return await self.get_task(task_id)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = tuple(to_column_value(name, value) for name, value in fields.items())
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",  # noqa: S608
                (*params, task_id),
            )
            await db.commit()
            updated = cursor.rowcount > 0
        finally:
            await db.close()
        if not updated:
            return None
        return await self.get_task(task_id)

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task. Returns True if a row was removed."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()
        if deleted:
            logger.info("Deleted task: %d", task_id)
        return deleted
