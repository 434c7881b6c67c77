"""Tests for Settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from cronkeeper.config import Settings


def test_defaults() -> None:
    s = Settings()

    assert s.database_path == Path("data/cronkeeper.db")
    assert s.scheduler_timezone == "UTC"
    assert s.task_timeout_seconds == 300
    assert s.output_limit == 10_000
    assert s.crontab_command == "crontab"
    assert s.crontab_id_marker == "# CRONKEEPER_ID:"
    assert s.crontab_comment_marker == "# CRONKEEPER_COMMENT:"
    assert s.crontab_sync_interval_minutes == 0
    assert s.notify_webhook_url == ""
    assert s.log_level == "INFO"


def test_env_ignored_under_pytest(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRONKEEPER_LOG_LEVEL", "DEBUG")

    assert Settings().log_level == "INFO"


def test_explicit_values() -> None:
    s = Settings(task_timeout_seconds=5, crontab_command="crontab -u backup")

    assert s.task_timeout_seconds == 5
    assert s.crontab_command == "crontab -u backup"


@pytest.mark.parametrize(
    "overrides",
    [
        {"task_timeout_seconds": 0},
        {"output_limit": 0},
        {"crontab_sync_interval_minutes": -1},
    ],
)
def test_rejects_invalid_values(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)
