# src/todo_bot/tasks/task_service.py

from __future__ import annotations

"""
Task lifecycle manager.

Owns the rules for creating, assigning, completing (with recurring re-creation),
archiving and deleting tasks, and for the role-based views. It is stateless:
every call re-reads the store, and all collaborators are injected.

Notifications are sent sequentially; a failed send is logged and never undoes
the mutation or stops the remaining sends.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, tzinfo
from typing import Any

from ..core.errors import PermissionDeniedError, TaskNotFoundError, UserInputError
from ..core.ports import OutboundMessenger, TaskRepo
from .schedule import advance, format_ts, resolve_reminder
from .task_models import Recurrence, SearchScope, Task, TaskStatus, ViewTab, unique_users

logger = logging.getLogger(__name__)

MAX_TITLE_LEN = 500

_EDITABLE = frozenset(
    {"title", "note", "assigned_to", "watchers", "due_at", "reminder_at", "reminder", "recurring", "channel_id"}
)


@dataclass(slots=True, frozen=True)
class CompletionResult:
    task: Task
    successor: Task | None = None
    already_closed: bool = False


def describe_task(task: Task, tz: tzinfo) -> str:
    """One-line mrkdwn summary used in replies and notifications."""
    extras: list[str] = []
    if task.due_at is not None:
        extras.append(f"due {format_ts(task.due_at, tz)}")
    if task.recurring:
        extras.append(task.recurring.value)
    if task.assigned_to and task.assigned_to != task.created_by:
        extras.append(f"assigned to <@{task.assigned_to}>")
    suffix = f" ({', '.join(extras)})" if extras else ""
    return f"#{task.id} *{task.title}*{suffix}"


class TaskLifecycle:
    def __init__(
        self,
        store: TaskRepo,
        messenger: OutboundMessenger,
        *,
        tz: tzinfo = UTC,
        clock: Callable[[], float] = time.time,
        list_limit: int = 50,
    ) -> None:
        self._store = store
        self._messenger = messenger
        self._tz = tz
        self._clock = clock
        self._list_limit = max(1, int(list_limit))

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> float:
        return self._clock()

    # ---- helpers ----

    def _require(self, task_id: int) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @staticmethod
    def _require_owner(task: Task, actor_id: str | None, action: str) -> None:
        if actor_id != task.created_by:
            raise PermissionDeniedError(f"Only the task owner (<@{task.created_by}>) can {action} task #{task.id}.")

    @staticmethod
    def _clean_title(raw: str | None) -> str:
        title = (raw or "").strip()
        if not title:
            raise UserInputError("Task title cannot be empty. Usage: `/todo add <title>`")
        return title[:MAX_TITLE_LEN]

    async def _notify(self, recipients: Iterable[str], text: str, *, task_id: int) -> int:
        sent = 0
        for user_id in recipients:
            try:
                await self._messenger.send_text(text=text, to_user_id=user_id)
                sent += 1
            except Exception:
                logger.exception("Notification failed task_id=%s user=%s", task_id, user_id)
        return sent

    # ---- queries ----

    def get(self, task_id: int) -> Task:
        return self._require(task_id)

    def list_view(self, user_id: str, tab: ViewTab | str = ViewTab.OPEN) -> list[Task]:
        view = tab if isinstance(tab, ViewTab) else ViewTab.parse(tab)
        if view is None:
            raise UserInputError(f"Unknown list `{tab}`. Use one of: {', '.join(t.value for t in ViewTab)}.")
        return self._store.list_tasks(user_id=user_id, tab=view, limit=self._list_limit)

    def search(self, query: str, *, user_id: str, scope: SearchScope = SearchScope.MINE) -> list[Task]:
        q = (query or "").strip()
        if not q:
            raise UserInputError("Search needs a keyword. Usage: `/todo search <keyword>`")
        owner_filter = user_id if scope == SearchScope.MINE else None
        return self._store.search_tasks(q, user_id=owner_filter, limit=self._list_limit)

    # ---- mutations ----

    async def create(
        self,
        title: str,
        creator: str,
        *,
        assignee: str | None = None,
        watchers: Iterable[str] = (),
        due_at: float | None = None,
        reminder: str | None = None,
        note: str | None = None,
        recurring: Recurrence | str | None = None,
        channel_id: str | None = None,
    ) -> Task:
        clean_title = self._clean_title(title)
        if not creator:
            raise UserInputError("Cannot create a task without a creator.")

        rec = recurring if isinstance(recurring, Recurrence) or recurring is None else Recurrence.parse(recurring)
        if recurring and rec is None:
            raise UserInputError(f"Unknown recurrence `{recurring}`. Use daily, weekly or monthly.")

        reminder_at = resolve_reminder(reminder, due_at=due_at, now_ts=self._clock(), tz=self._tz)

        task_id = self._store.add_task(
            title=clean_title,
            created_by=creator,
            assigned_to=assignee or creator,
            watchers=unique_users(watchers),
            note=(note or "").strip() or None,
            due_at=due_at,
            reminder_at=reminder_at,
            recurring=rec,
            channel_id=channel_id,
        )
        task = self._require(task_id)
        logger.info("Task created id=%s owner=%s assignee=%s", task.id, task.created_by, task.assigned_to)

        summary = describe_task(task, self._tz)
        if task.assigned_to != creator:
            await self._notify(
                [task.assigned_to],
                f":inbox_tray: <@{creator}> assigned you a new task: {summary}",
                task_id=task.id,
            )
        watchers_to_tell = [w for w in task.watchers if w not in (creator, task.assigned_to)]
        await self._notify(
            watchers_to_tell,
            f":eyes: <@{creator}> added you as a watcher on {summary}",
            task_id=task.id,
        )
        return task

    async def update(self, task_id: int, actor_id: str, **fields: Any) -> Task:
        """
        Owner-only edit. `reminder` (a reminder value) is resolved into reminder_at
        against the task's due date after the update. Without one, moving due_at
        shifts a pending reminder_at by the same amount.
        """
        unknown = set(fields) - _EDITABLE
        if unknown:
            raise ValueError(f"Cannot edit task fields: {sorted(unknown)}")

        before = self._require(task_id)
        self._require_owner(before, actor_id, "edit")

        changes = dict(fields)
        if "title" in changes:
            changes["title"] = self._clean_title(changes["title"])
        if "watchers" in changes:
            changes["watchers"] = unique_users(changes["watchers"])
        if "assigned_to" in changes:
            changes["assigned_to"] = (changes["assigned_to"] or "").strip() or before.created_by
        if "note" in changes:
            changes["note"] = (changes["note"] or "").strip() or None
        if "recurring" in changes and changes["recurring"] is not None:
            raw = changes["recurring"]
            changes["recurring"] = raw if isinstance(raw, Recurrence) else Recurrence.parse(raw)
            if changes["recurring"] is None:
                raise UserInputError(f"Unknown recurrence `{raw}`. Use daily, weekly or monthly.")
        if "reminder" in changes:
            when = changes.pop("reminder")
            if when:
                due_at = changes.get("due_at", before.due_at)
                changes["reminder_at"] = resolve_reminder(when, due_at=due_at, now_ts=self._clock(), tz=self._tz)
        new_due = changes.get("due_at")
        if (
            "reminder_at" not in changes
            and new_due is not None
            and before.due_at is not None
            and before.reminder_at is not None
        ):
            # Moving the due date carries a pending reminder along with it.
            changes["reminder_at"] = before.reminder_at + (new_due - before.due_at)

        if changes and not self._store.update_task_fields(task_id, **changes):
            raise TaskNotFoundError(task_id)
        after = self._require(task_id)
        logger.info("Task updated id=%s by=%s fields=%s", task_id, actor_id, sorted(changes))

        summary = describe_task(after, self._tz)
        new_assignee = after.assigned_to if after.assigned_to != before.assigned_to else None
        if new_assignee and new_assignee != actor_id:
            await self._notify(
                [new_assignee],
                f":inbox_tray: <@{actor_id}> assigned you {summary}",
                task_id=task_id,
            )

        previous = set(before.watchers)
        added = [w for w in after.watchers if w not in previous and w not in (actor_id, new_assignee)]
        await self._notify(added, f":eyes: <@{actor_id}> added you as a watcher on {summary}", task_id=task_id)
        return after

    async def assign(self, task_id: int, actor_id: str, assignee: str) -> Task:
        return await self.update(task_id, actor_id, assigned_to=assignee)

    def add_watcher(self, task_id: int, user_id: str) -> Task:
        """Self-service watch. Idempotent: a user is never listed twice."""
        self._require(task_id)
        if self._store.add_watcher(task_id, user_id):
            logger.info("Watcher added task_id=%s user=%s", task_id, user_id)
        return self._require(task_id)

    async def complete(self, task_id: int, actor_id: str | None = None) -> CompletionResult:
        task = self._require(task_id)
        if task.status != TaskStatus.OPEN:
            return CompletionResult(task=task, already_closed=True)

        now = self._clock()
        next_due = advance(now, task.recurring, self._tz) if task.recurring else None
        completed, successor_id = self._store.complete_task(task_id, completed_at=now, next_due_at=next_due)
        if not completed:
            # Lost a race with another completion (or the row is gone).
            return CompletionResult(task=self._require(task_id), already_closed=True)

        done = self._require(task_id)
        successor = self._store.get_task(successor_id) if successor_id is not None else None
        logger.info(
            "Task completed id=%s by=%s successor=%s",
            task_id,
            actor_id,
            successor.id if successor else None,
        )

        by = f" by <@{actor_id}>" if actor_id else ""
        await self._notify(
            [w for w in done.watchers if w != actor_id],
            f":white_check_mark: Task {describe_task(done, self._tz)} was completed{by}.",
            task_id=task_id,
        )
        return CompletionResult(task=done, successor=successor)

    def archive(self, task_id: int, actor_id: str) -> Task:
        task = self._require(task_id)
        self._require_owner(task, actor_id, "archive")
        if task.status == TaskStatus.ARCHIVED:
            return task
        if task.status != TaskStatus.DONE:
            raise UserInputError(f"Task #{task_id} must be completed before it can be archived.")
        self._store.transition_status(task_id, TaskStatus.ARCHIVED, expected=[TaskStatus.DONE])
        logger.info("Task archived id=%s by=%s", task_id, actor_id)
        return self._require(task_id)

    def delete(self, task_id: int, actor_id: str) -> Task:
        """Owner-only hard delete. Returns the removed task."""
        task = self._require(task_id)
        self._require_owner(task, actor_id, "delete")
        if not self._store.delete_task(task_id):
            raise TaskNotFoundError(task_id)
        logger.info("Task deleted id=%s by=%s", task_id, actor_id)
        return task
