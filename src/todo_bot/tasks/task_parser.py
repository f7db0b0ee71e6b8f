# src/todo_bot/tasks/task_parser.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import tzinfo

from .schedule import parse_due
from .task_models import Recurrence, unique_users

# Slack escapes user mentions as <@U123> or <@U123|display-name>.
MENTION_RE = re.compile(r"^<@([A-Z0-9]+)(?:\|[^>]*)?>$")


@dataclass(slots=True)
class AddIntent:
    """Structured result of `/todo add <free text>`."""

    title: str
    watchers: list[str] = field(default_factory=list)
    assignee: str | None = None
    due_at: float | None = None
    recurring: Recurrence | None = None
    reminder: str | None = None


def parse_mention(token: str) -> str | None:
    m = MENTION_RE.match(token.strip())
    return m.group(1) if m else None


def parse_add_text(text: str, *, now_ts: float, tz: tzinfo) -> AddIntent:
    """
    Split the free text of an `add` command into title and options.

    Recognised tokens:
      <@U..>               watcher
      assign:<@U..>        assignee
      due:<date>           due date (see schedule.parse_due)
      recurring:<interval> daily | weekly | monthly
      remind:<when>        reminder value (resolved later, so a bad value is reported)

    Anything else, including option tokens with unrecognised values, is part of the title.
    """
    title_parts: list[str] = []
    watchers: list[str] = []
    intent = AddIntent(title="")

    for token in (text or "").split():
        key, sep, value = token.partition(":")
        key = key.lower()

        user = parse_mention(token)
        if user:
            watchers.append(user)
            continue

        if sep and key == "assign" and parse_mention(value):
            intent.assignee = parse_mention(value)
            continue

        if sep and key == "due":
            due_at = parse_due(value, now_ts=now_ts, tz=tz)
            if due_at is not None:
                intent.due_at = due_at
                continue

        if sep and key == "recurring":
            rec = Recurrence.parse(value)
            if rec is not None:
                intent.recurring = rec
                continue

        if sep and key == "remind" and value:
            intent.reminder = value
            continue

        title_parts.append(token)

    intent.title = " ".join(title_parts).strip()
    intent.watchers = unique_users(watchers)
    return intent
