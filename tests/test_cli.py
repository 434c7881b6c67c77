"""Tests for the cronkeeper command line."""

import json
from pathlib import Path

import pytest
from conftest import FakeCrontab

from cronkeeper.cli import build_parser, main


@pytest.fixture
def db(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture(autouse=True)
def _fake_crontab(monkeypatch: pytest.MonkeyPatch, fake_crontab: FakeCrontab) -> None:
    monkeypatch.setattr("cronkeeper.config.settings.crontab_command", fake_crontab.command)


def _run(db: Path, *argv: str) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(["--db", str(db), *argv])
    return exc_info.value.code


def _run_json(db: Path, capsys: pytest.CaptureFixture, *argv: str):
    code = _run(db, *argv)
    return code, json.loads(capsys.readouterr().out)


# -- Parser --------------------------------------------------------------------


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_export_ids() -> None:
    args = build_parser().parse_args(["export", "1", "3"])

    assert args.task_ids == [1, 3]


# -- Commands ------------------------------------------------------------------


def test_add_and_list(db: Path, capsys: pytest.CaptureFixture) -> None:
    code, task = _run_json(db, capsys, "add", "Backup", "0 2 * * *", "backup.sh")
    assert code == 0
    assert task["name"] == "Backup"
    assert task["status"] == "pending"

    code, tasks = _run_json(db, capsys, "list")
    assert code == 0
    assert [t["id"] for t in tasks] == [task["id"]]


def test_add_invalid_schedule(db: Path, capsys: pytest.CaptureFixture) -> None:
    assert _run(db, "add", "Backup", "nope", "backup.sh") == 1
    assert "ERROR: Invalid cron schedule" in capsys.readouterr().err


def test_run(db: Path, capsys: pytest.CaptureFixture) -> None:
    _, task = _run_json(db, capsys, "add", "Hello", "0 2 * * *", "echo hello")

    code, result = _run_json(db, capsys, "run", str(task["id"]))

    assert code == 0
    assert result["status"] == "success"
    assert result["output"] == "hello\n"


def test_export_validate_unsync(
    db: Path, capsys: pytest.CaptureFixture, fake_crontab: FakeCrontab
) -> None:
    _, task = _run_json(db, capsys, "add", "Backup", "0 2 * * *", "backup.sh", "--system-managed")

    code, report = _run_json(db, capsys, "validate")
    assert code == 1
    assert report["is_valid"] is False

    code, result = _run_json(db, capsys, "export")
    assert code == 0
    assert result["exported"] == 1
    assert "0 2 * * * backup.sh" in fake_crontab.read()

    code, report = _run_json(db, capsys, "validate")
    assert code == 0
    assert report == {"is_valid": True, "discrepancies": []}

    code, updated = _run_json(db, capsys, "unsync", str(task["id"]))
    assert code == 0
    assert updated["crontab_id"] is None
    assert fake_crontab.read() == ""


def test_import_sync_status_raw(
    db: Path, capsys: pytest.CaptureFixture, fake_crontab: FakeCrontab
) -> None:
    fake_crontab.write("*/5 * * * * check.sh\n")

    code, result = _run_json(db, capsys, "import")
    assert code == 0
    assert result["imported"] == 1

    code, result = _run_json(db, capsys, "sync")
    assert code == 0
    assert result["exported"] == 1

    code, status = _run_json(db, capsys, "status")
    assert code == 0
    assert status["managed_entry_count"] == 1

    assert _run(db, "raw") == 0
    assert "*/5 * * * * check.sh" in capsys.readouterr().out


def test_remove(db: Path, capsys: pytest.CaptureFixture) -> None:
    _, task = _run_json(db, capsys, "add", "Backup", "0 2 * * *", "backup.sh")

    code, result = _run_json(db, capsys, "remove", str(task["id"]))
    assert code == 0
    assert result == {"deleted": task["id"]}

    assert _run(db, "remove", str(task["id"])) == 1
    assert "not found" in capsys.readouterr().err


def test_dump_and_load(db: Path, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    _run_json(db, capsys, "add", "Backup", "0 2 * * *", "backup.sh")
    code, dumped = _run_json(db, capsys, "dump", "--pretty")
    assert code == 0

    dump_file = tmp_path / "tasks.json"
    dump_file.write_text(json.dumps(dumped))
    other_db = tmp_path / "other.db"

    code, result = _run_json(other_db, capsys, "load", str(dump_file))

    assert code == 0
    assert result == {"imported": 1, "failed": 0, "errors": []}


def test_load_missing_file(db: Path, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    assert _run(db, "load", str(tmp_path / "missing.json")) == 1
    assert "ERROR" in capsys.readouterr().err
