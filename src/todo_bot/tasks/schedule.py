# src/todo_bot/tasks/schedule.py

from __future__ import annotations

"""
Calendar helpers for due dates, reminders and recurrence.

The store keeps epoch seconds; everything calendar-related (month arithmetic,
"end of day", weekday names) is done here with aware datetimes in the
configured time zone.
"""

import calendar
import logging
import re
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.errors import UserInputError
from .task_models import Recurrence

logger = logging.getLogger(__name__)

# Clock time used when a due date is given without a time.
DUE_TIME = time(17, 0)

REMINDER_PRESETS: dict[str, time] = {
    "morning": time(9, 0),
    "beginning_of_day": time(9, 0),
    "lunch": time(14, 0),
    "after_lunch": time(14, 0),
    "eod": time(17, 0),
    "end_of_day": time(17, 0),
}

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_RELATIVE_DAYS_RE = re.compile(r"^\+(\d{1,3})d$")
_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_DATETIME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{1,2}):(\d{2})$")


def load_timezone(name: str | None) -> tzinfo:
    key = (name or "").strip()
    if not key or key.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r; falling back to UTC", key)
        return UTC


def to_local(ts: float, tz: tzinfo) -> datetime:
    return datetime.fromtimestamp(ts, tz=tz)


def at_clock(day: date, clock: time, tz: tzinfo) -> float:
    return datetime.combine(day, clock, tzinfo=tz).timestamp()


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    idx = dt.month - 1 + months
    year = dt.year + idx // 12
    month = idx % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def advance(now_ts: float, recurrence: Recurrence, tz: tzinfo) -> float:
    """
    Next due timestamp for a recurring task, measured from `now_ts`
    (clock-relative: the previous due date does not matter).
    """
    now = to_local(now_ts, tz)
    if recurrence == Recurrence.DAILY:
        nxt = now + timedelta(days=1)
    elif recurrence == Recurrence.WEEKLY:
        nxt = now + timedelta(days=7)
    else:
        nxt = add_months(now, 1)
    return nxt.timestamp()


def parse_due(raw: str, *, now_ts: float, tz: tzinfo) -> float | None:
    """
    Parse the value of a `due:` token.

    Accepts YYYY-MM-DD, today, tomorrow, weekday names (next occurrence) and +Nd.
    Returns None when the value is not recognised.
    """
    value = (raw or "").strip().lower()
    if not value:
        return None

    today = to_local(now_ts, tz).date()

    if value == "today":
        return at_clock(today, DUE_TIME, tz)
    if value == "tomorrow":
        return at_clock(today + timedelta(days=1), DUE_TIME, tz)

    if value in _WEEKDAYS:
        ahead = (_WEEKDAYS.index(value) - today.weekday()) % 7 or 7
        return at_clock(today + timedelta(days=ahead), DUE_TIME, tz)

    m = _RELATIVE_DAYS_RE.match(value)
    if m:
        return at_clock(today + timedelta(days=int(m.group(1))), DUE_TIME, tz)

    try:
        day = date.fromisoformat(value)
    except ValueError:
        return None
    return at_clock(day, DUE_TIME, tz)


def _next_clock(clock: time, *, due_at: float | None, now_ts: float, tz: tzinfo) -> float:
    if due_at is not None:
        return at_clock(to_local(due_at, tz).date(), clock, tz)
    today = to_local(now_ts, tz).date()
    ts = at_clock(today, clock, tz)
    if ts <= now_ts:
        ts = at_clock(today + timedelta(days=1), clock, tz)
    return ts


def resolve_reminder(when: str | None, *, due_at: float | None, now_ts: float, tz: tzinfo) -> float | None:
    """
    Turn a reminder value into a concrete timestamp.

    - preset (morning/lunch/eod and long names) or HH:MM: that clock time on the
      due date; without a due date, today (tomorrow if already past)
    - YYYY-MM-DD HH:MM / YYYY-MM-DDTHH:MM: explicit timestamp
    """
    if not when or not when.strip():
        return None
    value = when.strip().lower().replace("-", "_")

    if value in REMINDER_PRESETS:
        return _next_clock(REMINDER_PRESETS[value], due_at=due_at, now_ts=now_ts, tz=tz)

    raw = when.strip()
    m = _CLOCK_RE.match(raw)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour > 23 or minute > 59:
            raise UserInputError(f"Invalid reminder time: {raw}")
        return _next_clock(time(hour, minute), due_at=due_at, now_ts=now_ts, tz=tz)

    m = _DATETIME_RE.match(raw)
    if m:
        try:
            dt = datetime(*(int(g) for g in m.groups()), tzinfo=tz)
        except ValueError:
            raise UserInputError(f"Invalid reminder date: {raw}") from None
        return dt.timestamp()

    presets = ", ".join(sorted({"morning", "lunch", "eod"}))
    raise UserInputError(f"Unknown reminder `{raw}`. Use {presets}, HH:MM or YYYY-MM-DD HH:MM.")


def format_ts(ts: float | None, tz: tzinfo) -> str:
    if ts is None:
        return "-"
    return to_local(ts, tz).strftime("%Y-%m-%d %H:%M")
