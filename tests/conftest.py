"""Shared test fixtures."""

import shlex
from dataclasses import dataclass
from pathlib import Path

import pytest

from cronkeeper.crontab.accessor import CrontabAccessor
from cronkeeper.crontab.sync import CrontabSyncService
from cronkeeper.scheduler.store import TaskStore

_FAKE_CRONTAB = """#!/bin/sh
FILE={path}
case "$1" in
  -l)
    if [ -f "$FILE" ]; then cat "$FILE"; else echo "no crontab for tester" >&2; exit 1; fi
    ;;
  -)
    cat > "$FILE"
    ;;
  *)
    echo "usage: crontab [-l | -]" >&2; exit 2
    ;;
esac
"""

_BROKEN_CRONTAB = """#!/bin/sh
echo "crontab: permission denied" >&2
exit 1
"""


@dataclass
class FakeCrontab:
    """A crontab executable backed by a plain file."""

    path: Path
    command: str

    def read(self) -> str:
        return self.path.read_text() if self.path.exists() else ""

    def write(self, content: str) -> None:
        self.path.write_text(content)


def _script(path: Path, body: str) -> str:
    path.write_text(body)
    path.chmod(0o755)
    return shlex.quote(str(path))


@pytest.fixture
def fake_crontab(tmp_path: Path) -> FakeCrontab:
    data = tmp_path / "crontab.txt"
    command = _script(tmp_path / "crontab", _FAKE_CRONTAB.format(path=shlex.quote(str(data))))
    return FakeCrontab(path=data, command=command)


@pytest.fixture
def broken_crontab_command(tmp_path: Path) -> str:
    return _script(tmp_path / "broken-crontab", _BROKEN_CRONTAB)


@pytest.fixture
async def store(tmp_path: Path) -> TaskStore:
    return TaskStore(db_path=tmp_path / "test.db")


@pytest.fixture
def accessor(fake_crontab: FakeCrontab) -> CrontabAccessor:
    return CrontabAccessor(command=fake_crontab.command)


@pytest.fixture
def sync_service(store: TaskStore, accessor: CrontabAccessor) -> CrontabSyncService:
    return CrontabSyncService(store, accessor)
