# tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions:
    - open -> done (complete)
    - done -> archived (archive)
    Only an explicit delete removes a row.
    """

    OPEN = "open"
    DONE = "done"
    ARCHIVED = "archived"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.OPEN
        try:
            return cls(raw)
        except ValueError:
            return cls.OPEN


class Recurrence(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, raw: str | None) -> Recurrence | None:
        if not raw:
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class ViewTab(StrEnum):
    """Role-based listings shown in `/todo list` and the home tab."""

    OPEN = "open"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    DELEGATED = "delegated"
    WATCHING = "watching"

    @classmethod
    def parse(cls, raw: str | None) -> ViewTab | None:
        key = (raw or "").strip().lower()
        if not key or key == "home":
            return cls.OPEN
        try:
            return cls(key)
        except ValueError:
            return None


class SearchScope(StrEnum):
    MINE = "mine"
    ALL = "all"


# SQLite INTEGER PRIMARY KEY range.
MAX_TASK_ID = 2**63 - 1


def parse_task_id(raw: str | None) -> int | None:
    """Parse "12" or "#12" into a task id; None for anything else (incl. non-ASCII digits, overflow)."""
    value = (raw or "").strip().lstrip("#")
    if not value.isascii() or not value.isdecimal():
        return None
    task_id = int(value)
    if task_id < 1 or task_id > MAX_TASK_ID:
        return None
    return task_id


def unique_users(users) -> list[str]:
    """Deduplicate user ids, keeping first-seen order and dropping blanks."""
    out: list[str] = []
    seen: set[str] = set()
    for u in users or ():
        uid = str(u or "").strip()
        if not uid or uid in seen:
            continue
        seen.add(uid)
        out.append(uid)
    return out


@dataclass(slots=True)
class Task:
    id: int
    title: str
    status: TaskStatus
    created_by: str
    assigned_to: str
    created_at: float
    updated_at: float

    note: str | None = None
    watchers: list[str] = field(default_factory=list)
    due_at: float | None = None
    reminder_at: float | None = None
    recurring: Recurrence | None = None
    channel_id: str | None = None
    completed_at: float | None = None

    def reminder_recipients(self) -> list[str]:
        """Assignee first, then watchers; each user once."""
        return unique_users([self.assigned_to, *self.watchers])
