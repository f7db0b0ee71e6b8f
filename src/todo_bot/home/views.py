# src/todo_bot/home/views.py

from __future__ import annotations

"""
Block Kit builders for the App Home tab and the task modal.

These are pure functions over task state: same input, same view. The Slack
connector publishes/opens whatever they return.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, tzinfo
from typing import Any

from ..tasks.schedule import DUE_TIME, at_clock, format_ts, to_local
from ..tasks.task_models import Recurrence, Task, TaskStatus, ViewTab, parse_task_id

HOME_TAB_ACTION_PREFIX = "home_tab_"
TASK_DONE_ACTION = "task_done"
TASK_EDIT_ACTION = "task_edit"
TASK_DELETE_ACTION = "task_delete"
TASK_NEW_ACTION = "task_new"
TASK_MODAL_CALLBACK = "task_modal"

# Slack rejects home tabs and modals with more blocks than this.
MAX_VIEW_BLOCKS = 100

TAB_LABELS: dict[ViewTab, str] = {
    ViewTab.OPEN: "Open",
    ViewTab.ASSIGNED: "Assigned to me",
    ViewTab.DELEGATED: "Delegated",
    ViewTab.WATCHING: "Watching",
    ViewTab.COMPLETED: "Completed",
    ViewTab.ARCHIVED: "Archived",
}

REMINDER_OPTIONS: dict[str, str] = {
    "morning": "Beginning of day (09:00)",
    "lunch": "After lunch (14:00)",
    "eod": "End of day (17:00)",
}

# block_id / action_id pairs of the task modal inputs.
F_TITLE = ("title_block", "title_input")
F_NOTE = ("note_block", "note_input")
F_ASSIGNEE = ("assignee_block", "assignee_select")
F_WATCHERS = ("watchers_block", "watchers_select")
F_DUE = ("due_block", "due_picker")
F_REMINDER = ("reminder_block", "reminder_select")
F_RECURRING = ("recurring_block", "recurring_select")


def _plain(text: str) -> dict[str, Any]:
    return {"type": "plain_text", "text": text, "emoji": True}


def _button(text: str, action_id: str, value: str, style: str | None = None) -> dict[str, Any]:
    btn: dict[str, Any] = {"type": "button", "text": _plain(text), "action_id": action_id, "value": value}
    if style:
        btn["style"] = style
    return btn


def _option(value: str, label: str) -> dict[str, Any]:
    return {"text": _plain(label), "value": value}


def _task_text(task: Task, tz: tzinfo) -> str:
    lines = [f"*{task.title}*  `#{task.id}`"]
    meta: list[str] = []
    if task.due_at is not None:
        meta.append(f":calendar: {format_ts(task.due_at, tz)}")
    if task.reminder_at is not None:
        meta.append(f":alarm_clock: {format_ts(task.reminder_at, tz)}")
    if task.recurring:
        meta.append(f":repeat: {task.recurring.value}")
    if task.assigned_to != task.created_by:
        meta.append(f"<@{task.created_by}> → <@{task.assigned_to}>")
    if task.watchers:
        meta.append(":eyes: " + " ".join(f"<@{w}>" for w in task.watchers))
    if meta:
        lines.append("  ".join(meta))
    if task.note:
        lines.append(f"_{task.note}_")
    return "\n".join(lines)


def _task_blocks(task: Task, user_id: str, tz: tzinfo) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = [{"type": "section", "text": {"type": "mrkdwn", "text": _task_text(task, tz)}}]

    buttons: list[dict[str, Any]] = []
    if task.status == TaskStatus.OPEN:
        buttons.append(_button("Done", TASK_DONE_ACTION, str(task.id), style="primary"))
    if task.created_by == user_id:
        buttons.append(_button("Edit", TASK_EDIT_ACTION, str(task.id)))
        buttons.append(_button("Delete", TASK_DELETE_ACTION, str(task.id), style="danger"))
    if buttons:
        blocks.append({"type": "actions", "block_id": f"task_{task.id}", "elements": buttons})
    return blocks


def build_home_view(user_id: str, tab: ViewTab, tasks: list[Task], *, tz: tzinfo = UTC) -> dict[str, Any]:
    """Render the App Home tab for `user_id` showing `tasks` under `tab`."""
    tab_buttons = []
    for t, label in TAB_LABELS.items():
        btn = _button(label, f"{HOME_TAB_ACTION_PREFIX}{t.value}", t.value)
        if t == tab:
            btn["style"] = "primary"
        tab_buttons.append(btn)

    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": _plain("Your Tasks")},
        {"type": "actions", "block_id": "home_tabs", "elements": tab_buttons},
        {
            "type": "actions",
            "block_id": "home_new",
            "elements": [_button(":heavy_plus_sign: New task", TASK_NEW_ACTION, "new")],
        },
        {"type": "divider"},
    ]

    if not tasks:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"_No {TAB_LABELS[tab].lower()} tasks_ :tada:"}})
    # One block stays free for the "more tasks" hint.
    budget = MAX_VIEW_BLOCKS - len(blocks) - 1
    shown = 0
    for task in tasks:
        task_blocks = _task_blocks(task, user_id, tz)
        if len(task_blocks) > budget:
            break
        blocks.extend(task_blocks)
        budget -= len(task_blocks)
        shown += 1

    hidden = len(tasks) - shown
    if hidden:
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"{hidden} more, use `/todo list {tab.value}` to see them all."}
                ],
            }
        )

    return {"type": "home", "private_metadata": tab.value, "blocks": blocks}


def _input(block: tuple[str, str], label: str, element: dict[str, Any], *, optional: bool = True) -> dict[str, Any]:
    block_id, action_id = block
    return {
        "type": "input",
        "block_id": block_id,
        "optional": optional,
        "label": _plain(label),
        "element": {**element, "action_id": action_id},
    }


def build_task_modal(task: Task | None = None, *, tz: tzinfo = UTC) -> dict[str, Any]:
    """
    Create/edit modal. private_metadata holds the task id when editing and is
    empty when creating.
    """
    title_el: dict[str, Any] = {"type": "plain_text_input", "max_length": 500}
    note_el: dict[str, Any] = {"type": "plain_text_input", "multiline": True}
    assignee_el: dict[str, Any] = {"type": "users_select"}
    watchers_el: dict[str, Any] = {"type": "multi_users_select"}
    due_el: dict[str, Any] = {"type": "datepicker"}
    reminder_el: dict[str, Any] = {
        "type": "static_select",
        "options": [_option(k, v) for k, v in REMINDER_OPTIONS.items()],
    }
    recurring_el: dict[str, Any] = {
        "type": "static_select",
        "options": [_option(r.value, r.value.capitalize()) for r in Recurrence],
    }

    if task is not None:
        title_el["initial_value"] = task.title
        if task.note:
            note_el["initial_value"] = task.note
        assignee_el["initial_user"] = task.assigned_to
        if task.watchers:
            watchers_el["initial_users"] = list(task.watchers)
        if task.due_at is not None:
            due_el["initial_date"] = to_local(task.due_at, tz).date().isoformat()
        if task.recurring:
            recurring_el["initial_option"] = _option(task.recurring.value, task.recurring.value.capitalize())

    return {
        "type": "modal",
        "callback_id": TASK_MODAL_CALLBACK,
        "private_metadata": str(task.id) if task is not None else "",
        "title": _plain("Edit task" if task is not None else "New task"),
        "submit": _plain("Save"),
        "close": _plain("Cancel"),
        "blocks": [
            _input(F_TITLE, "Title", title_el, optional=False),
            _input(F_NOTE, "Note", note_el),
            _input(F_ASSIGNEE, "Assignee", assignee_el),
            _input(F_WATCHERS, "Watchers", watchers_el),
            _input(F_DUE, "Due date", due_el),
            _input(F_REMINDER, "Reminder", reminder_el),
            _input(F_RECURRING, "Repeat", recurring_el),
        ],
    }


@dataclass(slots=True)
class TaskForm:
    """Values submitted through the task modal."""

    task_id: int | None
    title: str
    note: str | None = None
    assignee: str | None = None
    watchers: list[str] = field(default_factory=list)
    due_date: date | None = None
    reminder: str | None = None
    recurring: Recurrence | None = None

    def due_at(self, tz: tzinfo) -> float | None:
        if self.due_date is None:
            return None
        return at_clock(self.due_date, DUE_TIME, tz)


def parse_task_submission(view: dict[str, Any]) -> TaskForm:
    values = (view.get("state") or {}).get("values") or {}

    def field_of(block: tuple[str, str]) -> dict[str, Any]:
        return (values.get(block[0]) or {}).get(block[1]) or {}

    def selected(block: tuple[str, str]) -> str | None:
        opt = field_of(block).get("selected_option") or {}
        return opt.get("value")

    raw_date = field_of(F_DUE).get("selected_date")
    try:
        due = date.fromisoformat(raw_date) if raw_date else None
    except ValueError:
        due = None

    meta = (view.get("private_metadata") or "").strip()
    return TaskForm(
        task_id=parse_task_id(meta),
        title=(field_of(F_TITLE).get("value") or "").strip(),
        note=(field_of(F_NOTE).get("value") or "").strip() or None,
        assignee=field_of(F_ASSIGNEE).get("selected_user") or None,
        watchers=list(field_of(F_WATCHERS).get("selected_users") or []),
        due_date=due,
        reminder=selected(F_REMINDER),
        recurring=Recurrence.parse(selected(F_RECURRING)),
    )
