"""Bulk task transfer as JSON: export the task list, import a list of jobs."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from cronkeeper.scheduler.cron import validate_cron

if TYPE_CHECKING:
    from cronkeeper.app import Cronkeeper
    from cronkeeper.scheduler.models import Task

logger = logging.getLogger(__name__)

MAX_COMMAND_LENGTH = 1024


@dataclass
class TransferResult:
    imported: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def export_tasks_json(tasks: list[Task], *, pretty: bool = False) -> str:
    """Serialize *tasks* as ``[{id, name, schedule, command, createdAt}]``."""
    items = [
        {
            "id": t.id,
            "name": t.name,
            "schedule": t.cron_schedule,
            "command": t.command,
            "createdAt": t.created_at,
        }
        for t in tasks
    ]
    return json.dumps(items, indent=2 if pretty else None)


def _check_item(item: Any) -> str | None:
    """Return why *item* cannot be imported, or None."""
    if not isinstance(item, dict):
        return "not an object"
    if not all(item.get(key) for key in ("name", "schedule", "command")):
        return "missing fields"
    if not isinstance(item["command"], str) or len(item["command"]) > MAX_COMMAND_LENGTH:
        return "command too long"
    if not isinstance(item["schedule"], str) or not validate_cron(item["schedule"]):
        return "invalid schedule"
    return None


async def import_tasks_json(app: Cronkeeper, payload: Any) -> TransferResult:
    """Create and arm a task for each valid job in *payload*.

    Invalid items are counted in ``failed`` and the rest still import.

    Raises:
        ValueError: If *payload* is not a list.
    """
    if not isinstance(payload, list):
        msg = "Invalid payload: expected a list of tasks"
        raise ValueError(msg)

    result = TransferResult()
    for index, item in enumerate(payload):
        problem = _check_item(item)
        if problem is None:
            try:
                await app.create_task(str(item["name"]), item["schedule"], item["command"])
            except Exception as e:
                problem = str(e)
            else:
                result.imported += 1
                continue
        logger.warning("Import error at index %d: %s", index, problem)
        result.errors.append(f"Item {index}: {problem}")
        result.failed += 1

    logger.info("Task import: %d imported, %d failed", result.imported, result.failed)
    return result
