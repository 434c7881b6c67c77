"""cronkeeper — cron-scheduled shell tasks mirrored into the OS crontab."""

__version__ = "0.1.0"
