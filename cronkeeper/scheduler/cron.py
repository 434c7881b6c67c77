"""Cron expression validation and trigger construction on top of APScheduler."""

from __future__ import annotations

import re

from apscheduler.triggers.cron import CronTrigger

from cronkeeper.errors import InvalidScheduleError

FIELD_COUNT = 5

# Cron counts weekdays from Sunday (0 and 7), APScheduler from Monday.
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_MONTH_NAMES = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

# One comma-separated item of a standard cron field: ``*``, ``N``, ``N-M`` or a
# three-letter name, optionally followed by ``/step``.
_FIELD_PART = re.compile(
    r"(?P<start>\*|\d+|[a-z]{3})(?:-(?P<end>\d+|[a-z]{3}))?(?:/(?P<step>\d+))?"
)


def _split_field(
    field: str, names: tuple[str, ...] = ()
) -> list[tuple[str, str | None, int | None]]:
    """Parse *field* into ``(start, end, step)`` items using plain cron syntax.

    Extensions the system crontab does not understand (``L``, ``last``,
    ``2nd mon``, ``?``) are rejected here rather than handed to APScheduler.
    """
    items = []
    for part in field.lower().split(","):
        match = _FIELD_PART.fullmatch(part)
        if match is None:
            msg = f"unsupported syntax: {part!r}"
            raise ValueError(msg)

        start, end, step = match.group("start", "end", "step")
        for token in (start, end):
            if token and token.isalpha() and token not in names:
                msg = f"unknown name: {token!r}"
                raise ValueError(msg)
        if start == "*" and end:
            msg = f"unsupported syntax: {part!r}"
            raise ValueError(msg)
        if step is not None and int(step) < 1:
            msg = f"step must be positive: {part!r}"
            raise ValueError(msg)

        items.append((start, end, int(step) if step else None))
    return items


def _weekday_number(token: str) -> int:
    return _WEEKDAY_NAMES.index(token) if token.isalpha() else int(token)


def _translate_day_of_week(field: str) -> str:
    """Rewrite a cron weekday field into names APScheduler reads correctly.

    ``1-5`` becomes ``mon,tue,wed,thu,fri`` and ``*/2`` becomes
    ``sun,tue,thu,sat``.  Names and numbers may be mixed (``mon-5``).
    """
    if field == "*":
        return field

    days: list[int] = []
    for start, end, step in _split_field(field, _WEEKDAY_NAMES):
        if start == "*":
            first, last = 0, 6
        else:
            first = _weekday_number(start)
            if end:
                last = _weekday_number(end)
            elif step:
                last = 7
            else:
                last = first
        if last > 7 or first > last:
            msg = f"day of week out of range: {field}"
            raise ValueError(msg)
        days.extend(day % 7 for day in range(first, last + 1, step or 1))

    return ",".join(dict.fromkeys(_WEEKDAY_NAMES[day] for day in days))


def build_trigger(expression: str, timezone: str) -> CronTrigger:
    """Convert a 5-field crontab expression into an APScheduler trigger.

    Only syntax the system crontab accepts is allowed, so every expression
    that builds a trigger can also be written to the crontab.

    Raises:
        InvalidScheduleError: If the expression does not have five fields
            or any field is malformed or out of range.
    """
    fields = expression.split()
    if len(fields) != FIELD_COUNT:
        raise InvalidScheduleError(expression, f"expected {FIELD_COUNT} fields, got {len(fields)}")

    minute, hour, day, month, day_of_week = (f.lower() for f in fields)
    try:
        for field in (minute, hour, day):
            _split_field(field)
        _split_field(month, _MONTH_NAMES)
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except (ValueError, TypeError) as e:
        raise InvalidScheduleError(expression, str(e)) from e


def validate_cron(expression: str) -> bool:
    """Return True if *expression* is a valid 5-field cron schedule."""
    try:
        build_trigger(expression, "UTC")
    except InvalidScheduleError:
        return False
    return True
