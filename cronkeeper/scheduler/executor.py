"""TaskExecutor — runs task commands as child processes and records results."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import TYPE_CHECKING, Protocol

from cronkeeper.config import settings
from cronkeeper.scheduler.models import ExecutionResult, TaskStatus, utc_now

if TYPE_CHECKING:
    from cronkeeper.scheduler.models import Task
    from cronkeeper.scheduler.store import TaskStore

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


class Notifier(Protocol):
    async def notify(self, task: Task, status: TaskStatus, output: str) -> None: ...


def classify(exit_code: int | None) -> TaskStatus:
    """Map a process exit code to a task status (None means it never ran)."""
    return TaskStatus.SUCCESS if exit_code == 0 else TaskStatus.FAILED


class TaskExecutor:
    """Runs task commands with at most one in-flight execution per task.

    ``run_task`` returns as soon as the child process is launched.  The
    returned ``asyncio.Task`` resolves to an ``ExecutionResult`` once the
    outcome has been written to the store and the notifier has been called.

    Args:
        store: TaskStore for status writes.
        notifier: Receives ``notify(task, status, output)`` after every run.
        timeout_seconds: Wall-clock limit per run (default from settings).
        output_limit: Maximum stored output length (default from settings).
    """

    def __init__(
        self,
        store: TaskStore,
        notifier: Notifier,
        *,
        timeout_seconds: float | None = None,
        output_limit: int | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._timeout = timeout_seconds or settings.task_timeout_seconds
        self._output_limit = output_limit or settings.output_limit
        self._running: set[int] = set()
        self._inflight: set[asyncio.Task[ExecutionResult]] = set()

    def is_running(self, task_id: int) -> bool:
        return task_id in self._running

    @property
    def running_count(self) -> int:
        return len(self._running)

    async def run_task(self, task: Task) -> asyncio.Task[ExecutionResult] | None:
        """Start *task*'s command. Returns None if it is already running."""
        if task.id in self._running:
            logger.info("Task %d is already running, trigger dropped", task.id)
            return None
        self._running.add(task.id)

        try:
            await self._store.update_task(task.id, status=TaskStatus.RUNNING, last_run=utc_now())
        except Exception:
            self._running.discard(task.id)
            raise

        logger.info("Executing task %d: %s", task.id, task.command)
        try:
            proc = await asyncio.create_subprocess_shell(
                task.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.error("Error starting task %d: %s", task.id, e)
            self._running.discard(task.id)
            coro = self._record(task, None, f"Error starting task: {e}")
        else:
            coro = self._watch(task, proc)

        future = asyncio.create_task(coro, name=f"task-{task.id}")
        self._inflight.add(future)
        future.add_done_callback(self._inflight.discard)
        return future

    async def wait_idle(self) -> None:
        """Wait for every in-flight execution to be recorded."""
        while self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # -- Internal --------------------------------------------------------------

    async def _watch(self, task: Task, proc: asyncio.subprocess.Process) -> ExecutionResult:
        chunks: list[bytes] = []

        async def _drain() -> None:
            if proc.stdout is not None:
                while chunk := await proc.stdout.read(_READ_CHUNK):
                    chunks.append(chunk)
            await proc.wait()

        timed_out = False
        try:
            await asyncio.wait_for(_drain(), timeout=self._timeout)
        except TimeoutError:
            timed_out = True
            logger.warning("Task %d exceeded %gs, killing", task.id, self._timeout)
            _kill(proc)
            await proc.wait()

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if timed_out:
            output += f"\nTimed out after {self._timeout:g} seconds"
        return await self._record(task, proc.returncode, output, timed_out=timed_out)

    async def _record(
        self,
        task: Task,
        exit_code: int | None,
        output: str,
        *,
        timed_out: bool = False,
    ) -> ExecutionResult:
        """Single bookkeeping step after a run: store write, then notify."""
        self._running.discard(task.id)
        status = TaskStatus.FAILED if timed_out else classify(exit_code)
        stored_output = output[: self._output_limit]
        try:
            await self._store.update_task(task.id, status=status, output=stored_output)
        except Exception:
            logger.exception("Error updating task %d after execution", task.id)

        try:
            await self._notifier.notify(task, status, output)
        except Exception:
            logger.exception("Notifier failed for task %d", task.id)

        logger.info("Task %d completed with status: %s", task.id, status)
        return ExecutionResult(
            task_id=task.id,
            status=status,
            exit_code=exit_code,
            output=stored_output,
        )


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it spawned."""
    with contextlib.suppress(ProcessLookupError):
        os.killpg(proc.pid, signal.SIGKILL)
