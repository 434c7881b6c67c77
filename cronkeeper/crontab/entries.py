"""Crontab text format: marker-tagged entries, parsing, and rendering.

A managed entry looks like::

    # CRONKEEPER_ID:3f2a...
    # CRONKEEPER_COMMENT:nightly backup
    0 2 * * * tar -czf /tmp/b.tgz /home

Lines without an id marker are foreign entries.  Plain comments and
unparseable lines are dropped, so a full rewrite loses them.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Any

from cronkeeper.scheduler.cron import FIELD_COUNT, validate_cron

logger = logging.getLogger(__name__)

DEFAULT_ID_MARKER = "# CRONKEEPER_ID:"
DEFAULT_COMMENT_MARKER = "# CRONKEEPER_COMMENT:"


def generate_crontab_id() -> str:
    """Generate a new correlation id."""
    return uuid.uuid4().hex


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CrontabEntry:
    """One crontab data line plus the metadata recovered from its markers."""

    id: str | None
    schedule: str
    command: str
    comment: str | None = None

    @property
    def is_managed(self) -> bool:
        return self.id is not None

    def with_id(self, crontab_id: str) -> CrontabEntry:
        return replace(self, id=crontab_id)

    def same_job(self, other: CrontabEntry) -> bool:
        """True if both entries run the same command on the same schedule."""
        return self.schedule == other.schedule and self.command == other.command

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["is_managed"] = self.is_managed
        return data


@dataclass(frozen=True)
class CrontabFormat:
    """Marker prefixes used to tag managed entries."""

    id_marker: str = DEFAULT_ID_MARKER
    comment_marker: str = DEFAULT_COMMENT_MARKER

    def parse(self, content: str) -> list[CrontabEntry]:
        """Parse crontab text into entries. Invalid lines are skipped."""
        entries: list[CrontabEntry] = []
        pending_id: str | None = None
        pending_comment: str | None = None

        for raw in content.splitlines():
            line = raw.strip()
            if not line:
                continue

            if line.startswith(self.id_marker):
                pending_id = line[len(self.id_marker):].strip() or None
                pending_comment = None
                continue
            if line.startswith(self.comment_marker):
                pending_comment = line[len(self.comment_marker):].strip() or None
                continue
            if line.startswith("#"):
                # A foreign comment breaks the marker block.
                pending_id = None
                pending_comment = None
                continue

            entry = self._parse_line(line, pending_id, pending_comment)
            if entry is not None:
                entries.append(entry)
            pending_id = None
            pending_comment = None

        return entries

    def _parse_line(
        self, line: str, crontab_id: str | None, comment: str | None
    ) -> CrontabEntry | None:
        parts = line.split(None, FIELD_COUNT)
        if len(parts) <= FIELD_COUNT:
            logger.warning("Invalid crontab line (less than 6 fields): %s", line)
            return None

        schedule = " ".join(parts[:FIELD_COUNT])
        if not validate_cron(schedule):
            logger.warning("Invalid cron schedule in crontab: %s", schedule)
            return None

        return CrontabEntry(
            id=crontab_id,
            schedule=schedule,
            command=parts[FIELD_COUNT].strip(),
            comment=comment,
        )

    def format_entry(self, entry: CrontabEntry) -> list[str]:
        """Serialize one entry to its crontab lines."""
        lines: list[str] = []
        if entry.is_managed:
            lines.append(f"{self.id_marker}{entry.id}")
            if entry.comment:
                comment = " ".join(entry.comment.split())
                lines.append(f"{self.comment_marker}{comment}")
        lines.append(f"{entry.schedule} {entry.command}")
        return lines

    def render(self, entries: list[CrontabEntry]) -> str:
        """Serialize entries to full crontab content (newline-terminated)."""
        lines = [line for entry in entries for line in self.format_entry(entry)]
        return "\n".join(lines) + "\n" if lines else ""
