# tests/test_task_service.py

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from todo_bot.core.errors import PermissionDeniedError, TaskNotFoundError, UserInputError
from todo_bot.tasks.task_models import Recurrence, SearchScope, TaskStatus, ViewTab
from todo_bot.tasks.task_service import MAX_TITLE_LEN, TaskLifecycle, describe_task

from .fakes import FakeClock, FakeMessenger


def ts(*args: int) -> float:
    return datetime(*args, tzinfo=UTC).timestamp()


def _ids(tasks) -> list[int]:
    return [t.id for t in tasks]


@pytest.mark.asyncio
async def test_weekly_task_completion_spawns_next_occurrence(
    lifecycle: TaskLifecycle, messenger: FakeMessenger, clock: FakeClock
) -> None:
    task = await lifecycle.create(
        "Ship release",
        "U1",
        assignee="U2",
        watchers=["U3"],
        due_at=ts(2026, 10, 23, 17, 0),
        recurring="weekly",
    )
    assert task.status == TaskStatus.OPEN
    assert task.recurring == Recurrence.WEEKLY
    assert messenger.recipients() == ["U2", "U3"]
    assert "assigned you a new task" in messenger.sent[0].text

    messenger.sent.clear()
    clock.advance(3600)
    result = await lifecycle.complete(task.id, "U2")

    assert result.already_closed is False
    assert result.task.status == TaskStatus.DONE
    assert result.task.completed_at == clock.now
    assert result.successor is not None
    successor = result.successor
    assert successor.id != task.id
    assert successor.status == TaskStatus.OPEN
    assert (successor.title, successor.created_by, successor.assigned_to) == ("Ship release", "U1", "U2")
    assert successor.recurring == Recurrence.WEEKLY
    assert successor.due_at == ts(2026, 10, 26, 11, 0)
    assert successor.watchers == []

    # Only the watcher hears about it; the actor is skipped.
    assert messenger.recipients() == ["U3"]
    assert "was completed by <@U2>" in messenger.sent[0].text

    assert _ids(lifecycle.list_view("U1", ViewTab.COMPLETED)) == [task.id]
    assert _ids(lifecycle.list_view("U1", ViewTab.DELEGATED)) == [successor.id]
    assert _ids(lifecycle.list_view("U2", "assigned")) == [successor.id]
    assert _ids(lifecycle.list_view("U3", "watching")) == [task.id]

    assert _ids(lifecycle.search("ship", user_id="U1")) == [task.id, successor.id]
    assert lifecycle.search("ship", user_id="U9") == []
    assert len(lifecycle.search("SHIP", user_id="U9", scope=SearchScope.ALL)) == 2


@pytest.mark.asyncio
async def test_complete_is_idempotent(lifecycle: TaskLifecycle, store) -> None:
    task = await lifecycle.create("Standup", "U1", recurring=Recurrence.DAILY)

    first = await lifecycle.complete(task.id, "U1")
    second = await lifecycle.complete(task.id, "U1")

    assert first.successor is not None
    assert second.already_closed is True
    assert second.successor is None
    assert store.count_tasks() == 2


@pytest.mark.asyncio
async def test_non_owner_cannot_edit_or_delete(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Budget review", "U1", assignee="U2")

    with pytest.raises(PermissionDeniedError):
        await lifecycle.update(task.id, "U2", title="Hijacked")
    with pytest.raises(PermissionDeniedError):
        lifecycle.delete(task.id, "U2")

    unchanged = lifecycle.get(task.id)
    assert unchanged.title == "Budget review"
    assert unchanged.assigned_to == "U2"


@pytest.mark.asyncio
async def test_owner_update_notifies_new_assignee_and_new_watchers(
    lifecycle: TaskLifecycle, messenger: FakeMessenger
) -> None:
    task = await lifecycle.create("Plan offsite", "U1", watchers=["U3"])
    messenger.sent.clear()

    updated = await lifecycle.update(task.id, "U1", assigned_to="U5", watchers=["U3", "U4", "U5", "U1"])

    assert updated.assigned_to == "U5"
    assert updated.watchers == ["U3", "U4", "U5", "U1"]
    # U5 gets the assignment message only; U3 was already watching; U1 is the actor.
    assert messenger.recipients() == ["U5", "U4"]


@pytest.mark.asyncio
async def test_update_resolves_reminder_against_due_date(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Pay invoices", "U1", due_at=ts(2026, 10, 23, 17, 0))

    updated = await lifecycle.update(task.id, "U1", reminder="morning")
    assert updated.reminder_at == ts(2026, 10, 23, 9, 0)

    cleared = await lifecycle.update(task.id, "U1", reminder_at=None, due_at=None)
    assert cleared.reminder_at is None
    assert cleared.due_at is None

    with pytest.raises(ValueError):
        await lifecycle.update(task.id, "U1", status="done")


@pytest.mark.asyncio
async def test_create_with_reminder_preset(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Submit report", "U1", due_at=ts(2026, 10, 22, 17, 0), reminder="after_lunch")
    assert task.reminder_at == ts(2026, 10, 22, 14, 0)

    with pytest.raises(UserInputError):
        await lifecycle.create("Bad reminder", "U1", reminder="whenever")


@pytest.mark.asyncio
async def test_create_validates_title(lifecycle: TaskLifecycle, store) -> None:
    with pytest.raises(UserInputError):
        await lifecycle.create("   ", "U1")
    with pytest.raises(UserInputError):
        await lifecycle.create("Task", "U1", recurring="yearly")
    assert store.count_tasks() == 0

    task = await lifecycle.create("x" * (MAX_TITLE_LEN + 20), "U1")
    assert len(task.title) == MAX_TITLE_LEN
    assert task.assigned_to == "U1"


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_or_stop(store, clock: FakeClock) -> None:
    messenger = FakeMessenger(fail_for={"U2"})
    lifecycle = TaskLifecycle(store, messenger, tz=UTC, clock=clock)

    task = await lifecycle.create("Order parts", "U1", assignee="U2", watchers=["U3"])

    assert store.get_task(task.id) is not None
    assert messenger.recipients() == ["U3"]


@pytest.mark.asyncio
async def test_delete_removes_task_from_every_view(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Temporary", "U1", assignee="U2", watchers=["U3"])

    deleted = lifecycle.delete(task.id, "U1")
    assert deleted.id == task.id

    for user in ("U1", "U2", "U3"):
        for tab in ViewTab:
            assert lifecycle.list_view(user, tab) == []
    with pytest.raises(TaskNotFoundError):
        lifecycle.get(task.id)
    with pytest.raises(TaskNotFoundError):
        lifecycle.delete(task.id, "U1")


@pytest.mark.asyncio
async def test_archive_requires_completed_task_and_owner(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Quarterly report", "U1", assignee="U2")

    with pytest.raises(UserInputError):
        lifecycle.archive(task.id, "U1")

    await lifecycle.complete(task.id, "U2")
    with pytest.raises(PermissionDeniedError):
        lifecycle.archive(task.id, "U2")

    archived = lifecycle.archive(task.id, "U1")
    assert archived.status == TaskStatus.ARCHIVED
    assert _ids(lifecycle.list_view("U1", "archived")) == [task.id]
    assert lifecycle.list_view("U1", "completed") == []
    assert lifecycle.archive(task.id, "U1").status == TaskStatus.ARCHIVED


@pytest.mark.asyncio
async def test_watch_is_self_service_and_idempotent(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Renew domain", "U1")

    lifecycle.add_watcher(task.id, "U3")
    watched = lifecycle.add_watcher(task.id, "U3")

    assert watched.watchers == ["U3"]
    assert _ids(lifecycle.list_view("U3", ViewTab.WATCHING)) == [task.id]
    with pytest.raises(TaskNotFoundError):
        lifecycle.add_watcher(9999, "U3")


def test_list_view_and_search_reject_bad_input(lifecycle: TaskLifecycle) -> None:
    with pytest.raises(UserInputError):
        lifecycle.list_view("U1", "someday")
    with pytest.raises(UserInputError):
        lifecycle.search("   ", user_id="U1")


@pytest.mark.asyncio
async def test_describe_task(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create(
        "Ship release", "U1", assignee="U2", due_at=ts(2026, 10, 23, 17, 0), recurring="weekly"
    )
    assert describe_task(task, UTC) == (
        f"#{task.id} *Ship release* (due 2026-10-23 17:00, weekly, assigned to <@U2>)"
    )


@pytest.mark.asyncio
async def test_moving_due_date_moves_pending_reminder(lifecycle: TaskLifecycle) -> None:
    task = await lifecycle.create("Pay invoices", "U1", due_at=ts(2026, 10, 23, 17, 0), reminder="morning")
    assert task.reminder_at == ts(2026, 10, 23, 9, 0)

    moved = await lifecycle.update(task.id, "U1", due_at=ts(2026, 10, 26, 17, 0))
    assert moved.reminder_at == ts(2026, 10, 26, 9, 0)

    # Same due date plus an empty reminder choice (modal without a selection) keeps it.
    kept = await lifecycle.update(task.id, "U1", due_at=ts(2026, 10, 26, 17, 0), reminder=None)
    assert kept.reminder_at == ts(2026, 10, 26, 9, 0)

    explicit = await lifecycle.update(task.id, "U1", due_at=ts(2026, 10, 30, 17, 0), reminder="lunch")
    assert explicit.reminder_at == ts(2026, 10, 30, 14, 0)
