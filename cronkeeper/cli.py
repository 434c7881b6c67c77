"""cronkeeper command-line entry point.

Usage examples:
    # Run the scheduler in the foreground
    cronkeeper serve

    # Add a task and mirror it into the crontab
    cronkeeper add "Backup" "0 2 * * *" "/usr/bin/backup.sh" --system-managed
    cronkeeper export

    # Check both sides agree
    cronkeeper validate
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from cronkeeper.app import Cronkeeper
from cronkeeper.config import settings
from cronkeeper.errors import CronkeeperError
from cronkeeper.scheduler.store import TaskStore
from cronkeeper.transfer import export_tasks_json, import_tasks_json

logger = logging.getLogger(__name__)


def _emit(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# -- Commands ------------------------------------------------------------------


async def _serve(app: Cronkeeper, args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with app:
        logger.info("cronkeeper serving %d task(s)", app.engine.scheduled_count)
        await stop.wait()
        logger.info("Shutting down...")
    return 0


async def _list(app: Cronkeeper, args: argparse.Namespace) -> int:
    _emit([t.to_dict() for t in await app.list_tasks()])
    return 0


async def _add(app: Cronkeeper, args: argparse.Namespace) -> int:
    task = await app.create_task(
        args.name, args.schedule, args.command, is_system_managed=args.system_managed
    )
    _emit(task.to_dict())
    return 0


async def _remove(app: Cronkeeper, args: argparse.Namespace) -> int:
    await app.delete_task(args.task_id)
    _emit({"deleted": args.task_id})
    return 0


async def _run(app: Cronkeeper, args: argparse.Namespace) -> int:
    handle = await app.run_task(args.task_id)
    if handle is None:
        print(f"Task {args.task_id} is already running", file=sys.stderr)
        return 1
    result = await handle
    _emit(asdict(result))
    return 0 if result.succeeded else 1


async def _import(app: Cronkeeper, args: argparse.Namespace) -> int:
    result = await app.import_from_crontab()
    _emit(result.to_dict())
    return 1 if result.errors else 0


async def _export(app: Cronkeeper, args: argparse.Namespace) -> int:
    result = await app.export_to_crontab(args.task_ids or None)
    _emit(result.to_dict())
    return 1 if result.failed else 0


async def _sync(app: Cronkeeper, args: argparse.Namespace) -> int:
    result = await app.full_sync()
    _emit(result.to_dict())
    return 1 if result.errors else 0


async def _validate(app: Cronkeeper, args: argparse.Namespace) -> int:
    result = await app.validate_sync()
    _emit(result.to_dict())
    return 0 if result.is_valid else 1


async def _status(app: Cronkeeper, args: argparse.Namespace) -> int:
    status = await app.sync_status()
    _emit(status.to_dict())
    return 0


async def _unsync(app: Cronkeeper, args: argparse.Namespace) -> int:
    task = await app.remove_from_crontab(args.task_id)
    _emit(task.to_dict())
    return 0


async def _raw(app: Cronkeeper, args: argparse.Namespace) -> int:
    sys.stdout.write(await app.accessor.read_raw())
    return 0


async def _dump(app: Cronkeeper, args: argparse.Namespace) -> int:
    print(export_tasks_json(await app.list_tasks(), pretty=args.pretty))
    return 0


async def _load(app: Cronkeeper, args: argparse.Namespace) -> int:
    payload = json.loads(args.file.read_text(encoding="utf-8"))
    result = await import_tasks_json(app, payload)
    _emit(result.to_dict())
    return 1 if result.failed else 0


# -- Parser --------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cronkeeper",
        description="Schedule shell tasks and keep them in sync with the user crontab",
    )
    parser.add_argument("--db", type=Path, help="SQLite database path (default from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the scheduler until interrupted").set_defaults(
        handler=_serve
    )
    sub.add_parser("list", help="List tasks").set_defaults(handler=_list)

    add = sub.add_parser("add", help="Create a task")
    add.add_argument("name")
    add.add_argument("schedule", help='5-field cron expression, e.g. "*/5 * * * *"')
    add.add_argument("command", help="Shell command line")
    add.add_argument(
        "--system-managed", action="store_true", help="Mirror the task into the crontab"
    )
    add.set_defaults(handler=_add)

    remove = sub.add_parser("remove", help="Delete a task")
    remove.add_argument("task_id", type=int)
    remove.set_defaults(handler=_remove)

    run = sub.add_parser("run", help="Run a task now and wait for it")
    run.add_argument("task_id", type=int)
    run.set_defaults(handler=_run)

    sub.add_parser("import", help="Import crontab entries as tasks").set_defaults(
        handler=_import
    )

    export = sub.add_parser("export", help="Write system-managed tasks to the crontab")
    export.add_argument("task_ids", type=int, nargs="*")
    export.set_defaults(handler=_export)

    sub.add_parser("sync", help="Import then export").set_defaults(handler=_sync)
    sub.add_parser("validate", help="Report discrepancies").set_defaults(handler=_validate)
    sub.add_parser("status", help="Show sync counters").set_defaults(handler=_status)

    unsync = sub.add_parser("unsync", help="Remove a task's crontab entry, keep the task")
    unsync.add_argument("task_id", type=int)
    unsync.set_defaults(handler=_unsync)

    sub.add_parser("raw", help="Print the raw crontab").set_defaults(handler=_raw)

    dump = sub.add_parser("dump", help="Print all tasks as JSON")
    dump.add_argument("--pretty", action="store_true")
    dump.set_defaults(handler=_dump)

    load = sub.add_parser("load", help="Create tasks from a JSON file")
    load.add_argument("file", type=Path)
    load.set_defaults(handler=_load)

    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    app = Cronkeeper(store=TaskStore(args.db) if args.db else None)
    try:
        return await args.handler(app, args)
    except (CronkeeperError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    sys.exit(asyncio.run(_dispatch(args)))


if __name__ == "__main__":
    main()
