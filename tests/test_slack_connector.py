# tests/test_slack_connector.py

from __future__ import annotations

from typing import Any

import pytest

from todo_bot.connectors.slack_connector import SlackMessenger, register_handlers
from todo_bot.core.state import AppState
from todo_bot.home.views import F_TITLE, TASK_DELETE_ACTION, TASK_DONE_ACTION, TASK_MODAL_CALLBACK
from todo_bot.tasks.task_models import TaskStatus

from .fakes import FakeHomePublisher, FakeMessenger


class FakeBoltApp:
    """Records the listeners register_handlers() attaches, keyed by what they listen to."""

    def __init__(self) -> None:
        self.listeners: dict[Any, Any] = {}
        self.error_handler = None

    def _register(self, key: Any):
        def deco(fn):
            self.listeners[key] = fn
            return fn

        return deco

    def command(self, name: str):
        return self._register(("command", name))

    def event(self, name: str):
        return self._register(("event", name))

    def action(self, constraint: Any):
        key = constraint.pattern if hasattr(constraint, "pattern") else constraint
        return self._register(("action", key))

    def view(self, callback_id: str):
        return self._register(("view", callback_id))

    def error(self, fn):
        self.error_handler = fn
        return fn


class Recorder:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, **kwargs: Any) -> None:
        self.calls.append(kwargs)


class FakeWebClient:
    def __init__(self) -> None:
        self.posted: list[dict[str, Any]] = []
        self.published: list[dict[str, Any]] = []

    async def chat_postMessage(self, **kwargs: Any) -> None:
        self.posted.append(kwargs)

    async def views_publish(self, **kwargs: Any) -> None:
        self.published.append(kwargs)


@pytest.fixture()
def wired(state: AppState):
    app = FakeBoltApp()
    publisher = FakeHomePublisher()
    register_handlers(app, state, publisher=publisher)
    return app, publisher


@pytest.mark.asyncio
async def test_slash_command_acks_responds_and_refreshes_home(wired, state: AppState) -> None:
    app, publisher = wired
    ack, respond = Recorder(), Recorder()

    await app.listeners[("command", "/todo")](
        ack=ack,
        command={"text": "add Ship release", "user_id": "U1", "channel_id": "C1"},
        respond=respond,
    )

    assert ack.calls == [{}]
    assert respond.calls[0]["response_type"] == "in_channel"
    assert "Task added: #1" in respond.calls[0]["text"]
    assert [user for user, _ in publisher.published] == ["U1"]


@pytest.mark.asyncio
async def test_slash_command_errors_are_ephemeral(wired) -> None:
    app, publisher = wired
    ack, respond = Recorder(), Recorder()

    await app.listeners[("command", "/todo")](
        ack=ack, command={"text": "done nope", "user_id": "U1"}, respond=respond
    )

    assert ack.calls == [{}]
    assert respond.calls[0]["response_type"] == "ephemeral"
    assert "not a task id" in respond.calls[0]["text"]
    assert publisher.published == []


@pytest.mark.asyncio
async def test_home_opened_publishes_view(wired, state: AppState) -> None:
    app, publisher = wired
    await state.lifecycle.create("Ship release", "U1")

    await app.listeners[("event", "app_home_opened")](event={"user": "U1", "tab": "home"})
    await app.listeners[("event", "app_home_opened")](event={"user": "U1", "tab": "messages"})

    assert len(publisher.published) == 1
    user, view = publisher.published[0]
    assert user == "U1"
    assert view["type"] == "home"
    assert any("Ship release" in b.get("text", {}).get("text", "") for b in view["blocks"])


@pytest.mark.asyncio
async def test_done_and_delete_buttons(wired, state: AppState, messenger: FakeMessenger) -> None:
    app, publisher = wired
    task = await state.lifecycle.create("Budget review", "U1", assignee="U2")
    body = {"user": {"id": "U2"}, "view": {"private_metadata": "assigned"}}

    await app.listeners[("action", TASK_DELETE_ACTION)](ack=Recorder(), body=body, action={"value": str(task.id)})
    assert state.task_store.get_task(task.id) is not None
    assert messenger.sent[-1].to_user_id == "U2"
    assert messenger.sent[-1].text.startswith(":no_entry:")

    await app.listeners[("action", TASK_DONE_ACTION)](ack=Recorder(), body=body, action={"value": str(task.id)})
    assert state.task_store.get_task(task.id).status == TaskStatus.DONE
    assert publisher.published[-1][1]["private_metadata"] == "assigned"


@pytest.mark.asyncio
async def test_modal_submission_validates_and_creates(wired, state: AppState) -> None:
    app, publisher = wired
    handler = app.listeners[("view", TASK_MODAL_CALLBACK)]

    ack = Recorder()
    await handler(ack=ack, body={"user": {"id": "U1"}}, view={"private_metadata": "", "state": {"values": {}}})
    assert ack.calls == [{"response_action": "errors", "errors": {F_TITLE[0]: "Title is required."}}]
    assert state.task_store.count_tasks() == 0

    view = {
        "private_metadata": "",
        "state": {"values": {F_TITLE[0]: {F_TITLE[1]: {"value": "Plan offsite"}}}},
    }
    ack = Recorder()
    await handler(ack=ack, body={"user": {"id": "U1"}}, view=view)
    assert ack.calls == [{}]
    assert state.task_store.get_task(1).title == "Plan offsite"
    assert publisher.published[-1][0] == "U1"


@pytest.mark.asyncio
async def test_slack_messenger_posts_to_user_or_room() -> None:
    client = FakeWebClient()
    messenger = SlackMessenger(client)

    await messenger.send_text(text="hi", to_user_id="U1")
    await messenger.send_text(text="room", room_id="C1")
    await messenger.send_text(text="nowhere")
    await messenger.publish_home(user_id="U1", view={"type": "home", "blocks": []})

    assert client.posted == [{"channel": "U1", "text": "hi"}, {"channel": "C1", "text": "room"}]
    assert client.published == [{"user_id": "U1", "view": {"type": "home", "blocks": []}}]
