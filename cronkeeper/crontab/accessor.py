"""CrontabAccessor — reads and writes the user's crontab via the crontab tool."""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass

from cronkeeper.config import settings
from cronkeeper.crontab.entries import CrontabEntry, CrontabFormat, content_hash
from cronkeeper.errors import (
    CrontabCommandError,
    CrontabConflictError,
    CrontabEntryExistsError,
    CrontabEntryNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrontabSnapshot:
    """Entries parsed from one read, plus the hash of the raw text they came from."""

    entries: list[CrontabEntry]
    content_hash: str


class CrontabAccessor:
    """Pure text-format I/O against the OS crontab. No business logic.

    Every write is a full replacement.  Passing the ``content_hash`` of the
    snapshot a change was based on makes the write fail with
    ``CrontabConflictError`` if someone edited the crontab in between.

    Args:
        command: The crontab executable, optionally with extra arguments
            (e.g. ``"crontab -u backup"``). Defaults to settings.
        crontab_format: Marker configuration (defaults to settings).
    """

    def __init__(
        self,
        command: str | None = None,
        crontab_format: CrontabFormat | None = None,
    ) -> None:
        self._argv = shlex.split(command or settings.crontab_command)
        self._format = crontab_format or CrontabFormat(
            id_marker=settings.crontab_id_marker,
            comment_marker=settings.crontab_comment_marker,
        )

    @property
    def format(self) -> CrontabFormat:
        return self._format

    # -- Raw I/O ---------------------------------------------------------------

    async def _run(self, *args: str, stdin: str | None = None) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            msg = f"Failed to run {self._argv[0]}: {e}"
            raise CrontabCommandError(msg) from e

        stdout, stderr = await proc.communicate(stdin.encode("utf-8") if stdin is not None else None)
        return (
            proc.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def read_raw(self) -> str:
        """Return the crontab text; an absent crontab reads as empty."""
        code, out, err = await self._run("-l")
        if code == 0:
            return out
        if "no crontab" in err.lower():
            return ""
        msg = f"Failed to read crontab: {err.strip() or f'exit code {code}'}"
        raise CrontabCommandError(msg)

    async def write_raw(self, content: str) -> None:
        code, _, err = await self._run("-", stdin=content)
        if code != 0:
            msg = f"Failed to write crontab: {err.strip() or f'exit code {code}'}"
            raise CrontabCommandError(msg)

    # -- Entries ---------------------------------------------------------------

    async def read_snapshot(self) -> CrontabSnapshot:
        content = await self.read_raw()
        return CrontabSnapshot(self._format.parse(content), content_hash(content))

    async def read_user_crontab(self) -> list[CrontabEntry]:
        """Parse the current crontab into entries (fresh on every call)."""
        return (await self.read_snapshot()).entries

    async def write_user_crontab(
        self,
        entries: list[CrontabEntry],
        expected_hash: str | None = None,
    ) -> str:
        """Replace the whole crontab with *entries*. Returns the new content hash.

        Raises:
            CrontabConflictError: If *expected_hash* is given and the crontab
                no longer matches it.
            CrontabCommandError: If the crontab tool fails.
        """
        content = self._format.render(entries)
        if expected_hash is not None:
            current = await self.read_raw()
            if content_hash(current) != expected_hash:
                msg = "Crontab was modified externally since it was read"
                raise CrontabConflictError(msg)
        await self.write_raw(content)
        logger.info("Wrote crontab with %d entries", len(entries))
        return content_hash(content)

    def render(self, entries: list[CrontabEntry]) -> str:
        return self._format.render(entries)

    async def has_crontab_access(self) -> bool:
        """True if the crontab tool is usable (an empty crontab counts)."""
        try:
            await self.read_raw()
        except CrontabCommandError as e:
            logger.warning("No crontab access: %s", e)
            return False
        return True

    # -- Read-modify-write helpers ----------------------------------------------

    async def add_crontab_entry(self, entry: CrontabEntry) -> None:
        snapshot = await self.read_snapshot()
        if entry.id is not None and any(e.id == entry.id for e in snapshot.entries):
            raise CrontabEntryExistsError(entry.id)
        await self.write_user_crontab([*snapshot.entries, entry], snapshot.content_hash)

    async def update_crontab_entry(self, crontab_id: str, entry: CrontabEntry) -> None:
        snapshot = await self.read_snapshot()
        entries = list(snapshot.entries)
        index = _index_of(entries, crontab_id)
        entries[index] = entry.with_id(crontab_id)
        await self.write_user_crontab(entries, snapshot.content_hash)

    async def remove_crontab_entry(self, crontab_id: str) -> None:
        snapshot = await self.read_snapshot()
        entries = list(snapshot.entries)
        del entries[_index_of(entries, crontab_id)]
        await self.write_user_crontab(entries, snapshot.content_hash)


def _index_of(entries: list[CrontabEntry], crontab_id: str) -> int:
    for index, entry in enumerate(entries):
        if entry.id == crontab_id:
            return index
    raise CrontabEntryNotFoundError(crontab_id)
