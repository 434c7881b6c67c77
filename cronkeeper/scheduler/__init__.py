"""Task scheduling — models, persistence, execution, and timers."""

from cronkeeper.scheduler.engine import SchedulerEngine
from cronkeeper.scheduler.executor import TaskExecutor
from cronkeeper.scheduler.models import ExecutionResult, Task, TaskSource, TaskStatus
from cronkeeper.scheduler.store import TaskStore

__all__ = [
    "ExecutionResult",
    "SchedulerEngine",
    "Task",
    "TaskExecutor",
    "TaskSource",
    "TaskStatus",
    "TaskStore",
]
