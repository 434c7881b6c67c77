"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """cronkeeper configuration. Values come from ``CRONKEEPER_*`` env vars."""

    # Database
    database_path: Path = Field(default=Path("data/cronkeeper.db"))

    # Scheduler
    scheduler_timezone: str = Field(default="UTC")

    # Execution
    task_timeout_seconds: float = Field(default=300, gt=0)
    output_limit: int = Field(default=10_000, gt=0)

    # Crontab
    crontab_command: str = Field(default="crontab")
    crontab_id_marker: str = Field(default="# CRONKEEPER_ID:")
    crontab_comment_marker: str = Field(default="# CRONKEEPER_COMMENT:")
    crontab_sync_interval_minutes: int = Field(default=0, ge=0)

    # Notifications
    notify_webhook_url: str = Field(default="")
    notify_webhook_timeout: float = Field(default=10.0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="CRONKEEPER_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
