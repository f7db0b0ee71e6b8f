# tests/test_schedule.py

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from todo_bot.core.errors import UserInputError
from todo_bot.tasks.schedule import add_months, advance, load_timezone, parse_due, resolve_reminder
from todo_bot.tasks.task_models import Recurrence


def ts(*args: int) -> float:
    return datetime(*args, tzinfo=UTC).timestamp()


# Monday 2026-10-19 10:00 UTC
NOW = ts(2026, 10, 19, 10, 0)


def test_advance_is_relative_to_now() -> None:
    assert advance(NOW, Recurrence.DAILY, UTC) == ts(2026, 10, 20, 10, 0)
    assert advance(NOW, Recurrence.WEEKLY, UTC) == ts(2026, 10, 26, 10, 0)
    assert advance(NOW, Recurrence.MONTHLY, UTC) == ts(2026, 11, 19, 10, 0)


def test_month_arithmetic_clamps_day() -> None:
    assert add_months(datetime(2027, 1, 31, tzinfo=UTC), 1) == datetime(2027, 2, 28, tzinfo=UTC)
    assert add_months(datetime(2028, 1, 31, tzinfo=UTC), 1) == datetime(2028, 2, 29, tzinfo=UTC)
    assert add_months(datetime(2026, 12, 15, tzinfo=UTC), 1) == datetime(2027, 1, 15, tzinfo=UTC)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("today", ts(2026, 10, 19, 17, 0)),
        ("tomorrow", ts(2026, 10, 20, 17, 0)),
        ("friday", ts(2026, 10, 23, 17, 0)),
        ("monday", ts(2026, 10, 26, 17, 0)),
        ("+3d", ts(2026, 10, 22, 17, 0)),
        ("2026-12-01", ts(2026, 12, 1, 17, 0)),
        ("someday", None),
        ("2026-13-01", None),
    ],
)
def test_parse_due(raw: str, expected: float | None) -> None:
    assert parse_due(raw, now_ts=NOW, tz=UTC) == expected


def test_reminder_presets_use_due_date() -> None:
    due = ts(2026, 10, 23, 17, 0)
    assert resolve_reminder("morning", due_at=due, now_ts=NOW, tz=UTC) == ts(2026, 10, 23, 9, 0)
    assert resolve_reminder("after-lunch", due_at=due, now_ts=NOW, tz=UTC) == ts(2026, 10, 23, 14, 0)
    assert resolve_reminder("end_of_day", due_at=due, now_ts=NOW, tz=UTC) == ts(2026, 10, 23, 17, 0)


def test_reminder_without_due_date_picks_next_occurrence() -> None:
    # 09:00 already passed at 10:00 -> tomorrow; 14:00 still ahead -> today.
    assert resolve_reminder("morning", due_at=None, now_ts=NOW, tz=UTC) == ts(2026, 10, 20, 9, 0)
    assert resolve_reminder("lunch", due_at=None, now_ts=NOW, tz=UTC) == ts(2026, 10, 19, 14, 0)
    assert resolve_reminder("15:30", due_at=None, now_ts=NOW, tz=UTC) == ts(2026, 10, 19, 15, 30)


def test_reminder_explicit_and_invalid() -> None:
    assert resolve_reminder("2026-11-02T08:15", due_at=None, now_ts=NOW, tz=UTC) == ts(2026, 11, 2, 8, 15)
    assert resolve_reminder(None, due_at=None, now_ts=NOW, tz=UTC) is None
    assert resolve_reminder("  ", due_at=None, now_ts=NOW, tz=UTC) is None

    with pytest.raises(UserInputError):
        resolve_reminder("later", due_at=None, now_ts=NOW, tz=UTC)
    with pytest.raises(UserInputError):
        resolve_reminder("25:00", due_at=None, now_ts=NOW, tz=UTC)


def test_load_timezone_falls_back_to_utc() -> None:
    assert load_timezone("UTC") is UTC
    assert load_timezone("") is UTC
    assert load_timezone("Not/AZone") is UTC
