# src/todo_bot/tasks/reminder_dispatcher.py

from __future__ import annotations

"""
Reminder dispatcher.

A small polling loop that:
- fetches open tasks whose reminder_at is due,
- claims each reminder (clears reminder_at only if it still holds the seen value),
- sends one message per recipient (assignee + watchers) via an injected messenger port,
- restores the reminder with a backoff if every send failed.

Delivery policy: the claim happens before sending, so overlapping runs and repeated
runs with the same "now" never deliver the same firing twice. A reminder whose every
send failed is put back and may be delivered on a later tick; a partial failure is
not retried.

Loss window: if the process dies after a claim and before its sends complete, that
firing is gone (reminder_at is already NULL and nothing restores it on restart).
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, tzinfo

from ..core.ports import OutboundMessenger, TaskRepo
from .schedule import format_ts
from .task_models import Task

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderDispatch:
    """What the dispatcher wants to send for one reminder firing."""

    task: Task
    text: str
    recipients: tuple[str, ...]


def build_dispatch(task: Task, tz: tzinfo = UTC) -> ReminderDispatch | None:
    title = (task.title or "").strip()
    recipients = tuple(task.reminder_recipients())
    if not title or not recipients:
        return None

    text = f":alarm_clock: Reminder: *{title}* (#{task.id})"
    if task.due_at is not None:
        text += f", due {format_ts(task.due_at, tz)}"
    return ReminderDispatch(task=task, text=text, recipients=recipients)


async def dispatch_due_reminders(
        task_store: TaskRepo,
        messenger: OutboundMessenger,
        *,
        now_ts: float | None = None,
        retry_delay_seconds: float = 300.0,
        batch_limit: int = 32,
        tz: tzinfo = UTC,
) -> int:
    """
    One dispatcher tick. Returns the number of messages delivered.
    """
    if now_ts is None:
        now_ts = time.time()

    try:
        tasks = task_store.list_due_reminders(now_ts=now_ts, limit=int(batch_limit))
    except Exception:
        logger.exception("list_due_reminders failed")
        return 0

    delivered = 0
    for task in tasks:
        if task.reminder_at is None:
            continue

        try:
            claimed = task_store.try_claim_reminder(task.id, expected_at=task.reminder_at)
        except Exception:
            # Nothing was sent; the reminder is still due and will be seen next tick.
            logger.exception("try_claim_reminder failed task_id=%s", task.id)
            continue

        if not claimed:
            logger.debug("Reminder for task %s already claimed", task.id)
            continue

        dispatch = build_dispatch(task, tz)
        if dispatch is None:
            logger.warning("Task %s reminder is not dispatchable; dropped", task.id)
            continue

        sent = 0
        for user_id in dispatch.recipients:
            try:
                await messenger.send_text(text=dispatch.text, to_user_id=user_id)
                sent += 1
            except Exception:
                logger.exception("reminder send failed task_id=%s user=%s", task.id, user_id)

        delivered += sent
        if sent:
            logger.info("Reminder for task %s sent to %d/%d recipients", task.id, sent, len(dispatch.recipients))
            continue

        retry_at = now_ts + max(1.0, float(retry_delay_seconds))
        try:
            task_store.reschedule_reminder(task.id, retry_at)
            logger.warning("Reminder for task %s failed for all recipients; retry at %s", task.id, retry_at)
        except Exception:
            logger.exception("reschedule_reminder failed task_id=%s", task.id)

    return delivered


async def run_reminder_dispatcher(
        task_store: TaskRepo,
        messenger: OutboundMessenger,
        *,
        interval_seconds: float = 60.0,
        retry_delay_seconds: float = 300.0,
        batch_limit: int = 32,
        tz: tzinfo = UTC,
) -> None:
    """
    Simple polling dispatcher.

    Every interval_seconds runs dispatch_due_reminders(). To stop the dispatcher,
    cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    logger.info("Reminder dispatcher started (interval=%.1fs)", sleep_s)

    while True:
        await dispatch_due_reminders(
            task_store,
            messenger,
            retry_delay_seconds=retry_delay_seconds,
            batch_limit=batch_limit,
            tz=tz,
        )
        await asyncio.sleep(sleep_s)
