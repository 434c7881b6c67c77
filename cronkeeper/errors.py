"""Exception hierarchy shared by the scheduler, executor and crontab layers."""


class CronkeeperError(Exception):
    """Base class for every error raised by cronkeeper."""


class InvalidScheduleError(CronkeeperError):
    """A cron expression failed validation."""

    def __init__(self, expression: str, reason: str = "") -> None:
        self.expression = expression
        self.reason = reason
        msg = f"Invalid cron schedule: {expression!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InvalidTaskError(CronkeeperError, ValueError):
    """Task fields other than the schedule failed validation."""


class TaskNotFoundError(CronkeeperError):
    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


# -- Crontab -------------------------------------------------------------------


class CrontabError(CronkeeperError):
    """Base class for failures talking to the OS crontab."""


class CrontabCommandError(CrontabError):
    """The crontab tool is missing or exited with an unexpected error."""


class CrontabConflictError(CrontabError):
    """The crontab changed between our read and our write."""


class CrontabEntryExistsError(CrontabError):
    def __init__(self, crontab_id: str) -> None:
        self.crontab_id = crontab_id
        super().__init__(f"Crontab entry with ID {crontab_id} already exists")


class CrontabEntryNotFoundError(CrontabError):
    def __init__(self, crontab_id: str) -> None:
        self.crontab_id = crontab_id
        super().__init__(f"Crontab entry with ID {crontab_id} not found")


# -- Reconciliation ------------------------------------------------------------


class SyncError(CronkeeperError):
    """A point reconciliation operation failed."""


class NotSyncedError(SyncError):
    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} is not synced to crontab")
