# src/todo_bot/connectors/slack_connector.py

from __future__ import annotations

"""
Slack connector (slack_bolt AsyncApp).

init -> handlers -> (socket mode | HTTP server), with the reminder dispatcher
running next to it on the same event loop.

Every handler acknowledges first and then does the work; failures after the
acknowledgement are reported with a follow-up message (respond / DM), never
through the acknowledgement itself.
"""

import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from ..cli.commands import GENERIC_FAILURE, registry as command_registry
from ..core.errors import PermissionDeniedError, TodoError
from ..core.ports import HomePublisher
from ..core.state import AppState
from ..home.views import (
    F_TITLE,
    HOME_TAB_ACTION_PREFIX,
    TASK_DELETE_ACTION,
    TASK_DONE_ACTION,
    TASK_EDIT_ACTION,
    TASK_MODAL_CALLBACK,
    TASK_NEW_ACTION,
    build_home_view,
    build_task_modal,
    parse_task_submission,
)
from ..tasks.task_models import ViewTab, parse_task_id

logger = logging.getLogger(__name__)

# Subcommands after which the invoking user's home tab is refreshed.
_MUTATING_COMMANDS = frozenset({"add", "done", "delete", "watch", "assign", "archive"})


class SlackMessenger:
    """OutboundMessenger + HomePublisher backed by slack_sdk's AsyncWebClient."""

    def __init__(self, client: AsyncWebClient) -> None:
        self._client = client

    @property
    def client(self) -> AsyncWebClient:
        return self._client

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        # Posting to a user id delivers to the bot's DM with that user.
        channel = to_user_id or room_id
        if not channel:
            logger.warning("send_text without room_id/to_user_id; dropped: %r", text)
            return
        await self._client.chat_postMessage(channel=channel, text=text)

    async def publish_home(self, *, user_id: str, view: dict[str, Any]) -> None:
        await self._client.views_publish(user_id=user_id, view=view)


def create_slack_app(settings) -> AsyncApp:
    """Build the Bolt app (signature verification and payload parsing live there)."""
    return AsyncApp(
        token=settings.slack_bot_token,
        signing_secret=settings.slack_signing_secret,
    )


def _user_id(body: dict[str, Any]) -> str:
    return str((body.get("user") or {}).get("id") or "")


def _current_tab(body: dict[str, Any]) -> ViewTab:
    meta = (body.get("view") or {}).get("private_metadata")
    return ViewTab.parse(meta) or ViewTab.OPEN


def _action_task_id(action: dict[str, Any]) -> int | None:
    return parse_task_id(str(action.get("value") or ""))


def register_handlers(app: AsyncApp, state: AppState, *, publisher: HomePublisher) -> None:
    lifecycle = state.lifecycle
    messenger = state.messenger

    async def notify_actor(user_id: str, text: str) -> None:
        try:
            await messenger.send_text(text=text, to_user_id=user_id)
        except Exception:
            logger.exception("Failed to notify user=%s", user_id)

    async def refresh_home(user_id: str, tab: ViewTab = ViewTab.OPEN) -> None:
        if not user_id:
            return
        try:
            tasks = lifecycle.list_view(user_id, tab)
            view = build_home_view(user_id, tab, tasks, tz=lifecycle.tz)
            await publisher.publish_home(user_id=user_id, view=view)
        except Exception:
            logger.exception("Failed to publish home tab user=%s tab=%s", user_id, tab)

    async def guarded(user_id: str, op: Callable[[], Awaitable[Any]]) -> bool:
        """Run op; convert errors into a message to the actor only."""
        try:
            await op()
            return True
        except PermissionDeniedError as e:
            await notify_actor(user_id, f":no_entry: {e.user_message()}")
        except TodoError as e:
            await notify_actor(user_id, f":warning: {e.user_message()}")
        except Exception:
            logger.exception("Home action failed user=%s", user_id)
            await notify_actor(user_id, GENERIC_FAILURE)
        return False

    # ---- /todo ----

    @app.command("/todo")
    async def handle_todo(ack, command, respond) -> None:
        user_id = command.get("user_id") or ""
        receipt = command_registry.intake(
            command.get("text") or "",
            user_id=user_id,
            channel_id=command.get("channel_id"),
        )
        await ack()
        logger.info("/todo %s user=%s", receipt.name, user_id)

        reply = await command_registry.run(state, receipt)
        try:
            await respond(text=reply.text, response_type="ephemeral" if reply.ephemeral else "in_channel")
        except Exception:
            logger.exception("Failed to respond to /todo %s user=%s", receipt.name, user_id)

        if reply.ok and receipt.name in _MUTATING_COMMANDS:
            await refresh_home(user_id)

    # ---- App Home ----

    @app.event("app_home_opened")
    async def handle_home_opened(event) -> None:
        if event.get("tab", "home") != "home":
            return
        await refresh_home(event.get("user") or "")

    @app.action(re.compile(f"^{HOME_TAB_ACTION_PREFIX}"))
    async def handle_home_tab(ack, body, action) -> None:
        await ack()
        tab = ViewTab.parse(action.get("value")) or ViewTab.OPEN
        await refresh_home(_user_id(body), tab)

    @app.action(TASK_DONE_ACTION)
    async def handle_task_done(ack, body, action) -> None:
        await ack()
        user_id = _user_id(body)
        task_id = _action_task_id(action)
        if task_id is None:
            return
        await guarded(user_id, lambda: lifecycle.complete(task_id, user_id))
        await refresh_home(user_id, _current_tab(body))

    @app.action(TASK_DELETE_ACTION)
    async def handle_task_delete(ack, body, action) -> None:
        await ack()
        user_id = _user_id(body)
        task_id = _action_task_id(action)
        if task_id is None:
            return

        async def op() -> None:
            lifecycle.delete(task_id, user_id)

        await guarded(user_id, op)
        await refresh_home(user_id, _current_tab(body))

    @app.action(TASK_NEW_ACTION)
    async def handle_task_new(ack, body, client) -> None:
        await ack()
        try:
            await client.views_open(trigger_id=body["trigger_id"], view=build_task_modal(tz=lifecycle.tz))
        except SlackApiError:
            logger.exception("views_open failed (new task)")

    @app.action(TASK_EDIT_ACTION)
    async def handle_task_edit(ack, body, action, client) -> None:
        await ack()
        user_id = _user_id(body)
        task_id = _action_task_id(action)
        if task_id is None:
            return

        async def op() -> None:
            task = lifecycle.get(task_id)
            if task.created_by != user_id:
                raise PermissionDeniedError(f"Only the task owner (<@{task.created_by}>) can edit task #{task.id}.")
            await client.views_open(trigger_id=body["trigger_id"], view=build_task_modal(task, tz=lifecycle.tz))

        await guarded(user_id, op)

    # ---- Modal submission ----

    @app.view(TASK_MODAL_CALLBACK)
    async def handle_task_modal(ack, body, view) -> None:
        form = parse_task_submission(view)
        if not form.title:
            await ack(response_action="errors", errors={F_TITLE[0]: "Title is required."})
            return
        await ack()

        user_id = _user_id(body)
        due_at = form.due_at(lifecycle.tz)

        async def op() -> None:
            if form.task_id is None:
                await lifecycle.create(
                    form.title,
                    user_id,
                    assignee=form.assignee,
                    watchers=form.watchers,
                    due_at=due_at,
                    reminder=form.reminder,
                    note=form.note,
                    recurring=form.recurring,
                )
                return
            await lifecycle.update(
                form.task_id,
                user_id,
                title=form.title,
                note=form.note,
                assigned_to=form.assignee,
                watchers=form.watchers,
                due_at=due_at,
                recurring=form.recurring,
                reminder=form.reminder,
            )

        await guarded(user_id, op)
        await refresh_home(user_id)

    @app.error
    async def handle_errors(error, body) -> None:
        logger.error("Unhandled Bolt error: %r (type=%s)", error, (body or {}).get("type"))
