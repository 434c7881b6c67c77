"""Tests for SchedulerEngine — APScheduler lifecycle and the timer map."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cronkeeper.errors import InvalidScheduleError
from cronkeeper.scheduler.engine import INTERRUPTED_OUTPUT, SchedulerEngine
from cronkeeper.scheduler.models import Task, TaskStatus
from cronkeeper.scheduler.store import TaskStore


@pytest.fixture
def executor() -> MagicMock:
    e = MagicMock()
    e.is_running = MagicMock(return_value=False)
    e.run_task = AsyncMock(return_value=None)
    return e


@pytest.fixture
async def engine(store: TaskStore, executor: MagicMock) -> SchedulerEngine:
    eng = SchedulerEngine(store=store, executor=executor, timezone="America/Chicago")
    yield eng
    await eng.stop()


async def _make_task(store: TaskStore, schedule: str = "0 9 * * *", **kwargs) -> Task:
    defaults = {"name": "Test Task", "command": "echo hi"}
    defaults.update(kwargs)
    return await store.create_task(cron_schedule=schedule, **defaults)


def _job_ids(engine: SchedulerEngine) -> set[str]:
    return {j.id for j in engine._scheduler.get_jobs()}


# -- Lifecycle -----------------------------------------------------------------


async def test_start_and_stop(engine: SchedulerEngine) -> None:
    await engine.start()
    assert engine.running is True

    await engine.stop()
    assert engine.running is False
    assert engine.scheduled_count == 0


async def test_stop_is_idempotent(engine: SchedulerEngine) -> None:
    await engine.stop()
    await engine.start()
    await engine.stop()
    await engine.stop()

    assert engine.running is False


async def test_start_arms_stored_tasks(engine: SchedulerEngine, store: TaskStore) -> None:
    t1 = await _make_task(store)
    t2 = await _make_task(store, "*/5 * * * *")

    await engine.start()

    assert _job_ids(engine) == {f"task-{t1.id}", f"task-{t2.id}"}
    assert engine.is_scheduled(t1.id)
    assert engine.next_run_time(t1.id) is not None


async def test_start_skips_invalid_schedules(engine: SchedulerEngine, store: TaskStore) -> None:
    good = await _make_task(store)
    bad = await _make_task(store, "not a cron")

    await engine.start()

    assert engine.is_scheduled(good.id)
    assert not engine.is_scheduled(bad.id)


# -- Restart recovery ----------------------------------------------------------


async def test_start_marks_stale_running_tasks_failed(
    engine: SchedulerEngine, store: TaskStore
) -> None:
    stale = await _make_task(store, status=TaskStatus.RUNNING)
    idle = await _make_task(store)

    await engine.start()

    recovered = await store.get_task(stale.id)
    assert recovered.status is TaskStatus.FAILED
    assert recovered.output == INTERRUPTED_OUTPUT
    assert not engine.is_scheduled(stale.id)
    assert engine.is_scheduled(idle.id)


async def test_recover_keeps_live_runs(
    engine: SchedulerEngine, store: TaskStore, executor: MagicMock
) -> None:
    live = await _make_task(store, status=TaskStatus.RUNNING)
    executor.is_running.side_effect = lambda task_id: task_id == live.id

    assert await engine.recover_interrupted() == set()
    assert (await store.get_task(live.id)).status is TaskStatus.RUNNING


# -- Task management -----------------------------------------------------------


async def test_schedule_task_replaces_existing_job(
    engine: SchedulerEngine, store: TaskStore
) -> None:
    task = await _make_task(store)
    await engine.start()

    task.cron_schedule = "30 6 * * *"
    engine.schedule_task(task)

    assert engine.scheduled_count == 1
    assert _job_ids(engine) == {f"task-{task.id}"}
    job = engine._scheduler.get_job(f"task-{task.id}")
    assert job.args[0].cron_schedule == "30 6 * * *"


async def test_schedule_task_snapshots_task(engine: SchedulerEngine, store: TaskStore) -> None:
    task = await _make_task(store)
    await engine.start()
    engine.schedule_task(task)

    task.command = "rm -rf /tmp/changed"

    job = engine._scheduler.get_job(f"task-{task.id}")
    assert job.args[0].command == "echo hi"


async def test_invalid_schedule_keeps_existing_job(
    engine: SchedulerEngine, store: TaskStore
) -> None:
    task = await _make_task(store)
    await engine.start()

    task.cron_schedule = "99 * * * *"
    with pytest.raises(InvalidScheduleError):
        engine.schedule_task(task)

    job = engine._scheduler.get_job(f"task-{task.id}")
    assert job.args[0].cron_schedule == "0 9 * * *"


async def test_unschedule_task(engine: SchedulerEngine, store: TaskStore) -> None:
    task = await _make_task(store)
    await engine.start()

    engine.unschedule_task(task.id)
    engine.unschedule_task(task.id)

    assert not engine.is_scheduled(task.id)
    assert engine.next_run_time(task.id) is None
    assert _job_ids(engine) == set()


async def test_reload_rearms_from_store(engine: SchedulerEngine, store: TaskStore) -> None:
    await engine.start()
    task = await _make_task(store)
    assert not engine.is_scheduled(task.id)

    assert await engine.reload() == 1
    assert engine.is_scheduled(task.id)


async def test_schedule_periodic(engine: SchedulerEngine) -> None:
    callback = AsyncMock()
    await engine.start()

    engine.schedule_periodic("crontab-sync", callback, 5)
    engine.schedule_periodic("crontab-sync", callback, 10)

    assert _job_ids(engine) == {"crontab-sync"}


# -- Firing --------------------------------------------------------------------


async def test_fire_delegates_to_executor(
    engine: SchedulerEngine, store: TaskStore, executor: MagicMock
) -> None:
    task = await _make_task(store)

    await engine._fire(task)

    executor.run_task.assert_awaited_once_with(task)


async def test_fire_logs_executor_errors(
    engine: SchedulerEngine, store: TaskStore, executor: MagicMock
) -> None:
    executor.run_task.side_effect = RuntimeError("db down")
    task = await _make_task(store)

    await engine._fire(task)
