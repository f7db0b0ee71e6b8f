# src/todo_bot/cli/commands.py

from __future__ import annotations

"""
`/todo` command router.

Handling is split in two phases so connectors can acknowledge within the
platform deadline:

- intake(): synchronous, pure parsing -> CommandReceipt (usage errors decided here)
- run():    async, performs the store mutation / query and any notifications.
            Every failure is turned into a CommandReply; nothing escapes.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..core.errors import PermissionDeniedError, TodoError
from ..core.state import AppState
from ..tasks.task_models import SearchScope, Task, ViewTab, parse_task_id
from ..tasks.task_parser import parse_add_text, parse_mention
from ..tasks.task_service import describe_task

logger = logging.getLogger(__name__)

GENERIC_FAILURE = ":x: Something went wrong while handling your request. Please try again later."


@dataclass(slots=True, frozen=True)
class CommandReceipt:
    name: str
    args: list[str]
    user_id: str
    channel_id: str | None = None
    error: str | None = None

    @property
    def text(self) -> str:
        return " ".join(self.args)


@dataclass(slots=True, frozen=True)
class CommandReply:
    text: str
    ephemeral: bool = True
    ok: bool = True


CommandHandler = Callable[[AppState, CommandReceipt], Awaitable[CommandReply]]


@dataclass(slots=True)
class _Command:
    handler: CommandHandler
    help_text: str
    usage: str
    min_args: int = 0
    task_id_arg: bool = False
    aliases: list[str] = field(default_factory=list)


class CommandRegistry:
    """Subcommand registry for `/todo <subcommand> <args>`."""

    def __init__(self) -> None:
        self._commands: dict[str, _Command] = {}
        self._aliases: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        *,
        usage: str = "",
        min_args: int = 0,
        task_id_arg: bool = False,
        aliases: list[str] | None = None,
    ) -> None:
        key = name.lower()
        self._commands[key] = _Command(
            handler=handler,
            help_text=help_text,
            usage=usage or key,
            min_args=min_args,
            task_id_arg=task_id_arg,
            aliases=list(aliases or []),
        )
        for alias in aliases or []:
            self._aliases[alias.lower()] = key

    def _lookup(self, name: str) -> tuple[str, _Command] | None:
        key = self._aliases.get(name, name)
        cmd = self._commands.get(key)
        return (key, cmd) if cmd else None

    def intake(self, text: str, *, user_id: str, channel_id: str | None = None) -> CommandReceipt:
        parts = (text or "").split()
        if not parts:
            return CommandReceipt(name="help", args=[], user_id=user_id, channel_id=channel_id)

        name = parts[0].lower()
        args = parts[1:]

        found = self._lookup(name)
        if found is None:
            return CommandReceipt(
                name=name,
                args=args,
                user_id=user_id,
                channel_id=channel_id,
                error=f":grey_question: Unknown subcommand `{name}`. Use: `/todo {'|'.join(self._commands)}`.",
            )

        key, cmd = found
        error = None
        if len(args) < cmd.min_args:
            error = f"Usage: `/todo {cmd.usage}`"
        elif cmd.task_id_arg and parse_task_id(args[0]) is None:
            error = f"`{args[0]}` is not a task id. Usage: `/todo {cmd.usage}`"
        return CommandReceipt(name=key, args=args, user_id=user_id, channel_id=channel_id, error=error)

    async def run(self, state: AppState, receipt: CommandReceipt) -> CommandReply:
        if receipt.error:
            return CommandReply(text=receipt.error, ok=False)

        found = self._lookup(receipt.name)
        if found is None:
            return CommandReply(text=f"Unknown subcommand `{receipt.name}`.", ok=False)

        try:
            return await found[1].handler(state, receipt)
        except PermissionDeniedError as e:
            logger.info("Permission denied user=%s command=%s: %s", receipt.user_id, receipt.name, e)
            return CommandReply(text=f":no_entry: {e.user_message()}", ok=False)
        except TodoError as e:
            return CommandReply(text=f":warning: {e.user_message()}", ok=False)
        except Exception:
            logger.exception("Command /todo %s failed user=%s", receipt.name, receipt.user_id)
            return CommandReply(text=GENERIC_FAILURE, ok=False)

    async def handle(self, state: AppState, text: str, *, user_id: str, channel_id: str | None = None) -> CommandReply:
        """intake() + run() for connectors that have no acknowledgement deadline."""
        return await self.run(state, self.intake(text, user_id=user_id, channel_id=channel_id))

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for cmd in self._commands.values():
            lines.append(f"  `/todo {cmd.usage}` - {cmd.help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_list(state: AppState, tasks: list[Task]) -> str:
    tz = state.lifecycle.tz
    return "\n".join(f"• {describe_task(t, tz)}" for t in tasks)


async def cmd_help(state: AppState, receipt: CommandReceipt) -> CommandReply:
    return CommandReply(text=registry.build_help())


async def cmd_add(state: AppState, receipt: CommandReceipt) -> CommandReply:
    lifecycle = state.lifecycle
    intent = parse_add_text(receipt.text, now_ts=lifecycle.now(), tz=lifecycle.tz)
    task = await lifecycle.create(
        intent.title,
        receipt.user_id,
        assignee=intent.assignee,
        watchers=intent.watchers,
        due_at=intent.due_at,
        reminder=intent.reminder,
        recurring=intent.recurring,
        channel_id=receipt.channel_id,
    )
    return CommandReply(text=f":white_check_mark: Task added: {describe_task(task, lifecycle.tz)}", ephemeral=False)


async def cmd_list(state: AppState, receipt: CommandReceipt) -> CommandReply:
    raw_tab = receipt.args[0] if receipt.args else ViewTab.OPEN.value
    tasks = state.lifecycle.list_view(receipt.user_id, raw_tab)
    tab = ViewTab.parse(raw_tab) or ViewTab.OPEN
    if not tasks:
        return CommandReply(text=f":tada: No {tab.value} tasks.")
    return CommandReply(text=f":clipboard: Your {tab.value} tasks:\n{_format_list(state, tasks)}")


async def cmd_done(state: AppState, receipt: CommandReceipt) -> CommandReply:
    task_id = parse_task_id(receipt.args[0])
    result = await state.lifecycle.complete(task_id, receipt.user_id)
    if result.already_closed:
        return CommandReply(text=f"Task #{task_id} is already {result.task.status.value}.")

    text = f":white_check_mark: Task #{task_id} marked as complete."
    if result.successor is not None:
        text += f"\n:repeat: Next occurrence: {describe_task(result.successor, state.lifecycle.tz)}"
    return CommandReply(text=text)


async def cmd_search(state: AppState, receipt: CommandReceipt) -> CommandReply:
    words = [a for a in receipt.args if a != "--all"]
    scope = SearchScope.ALL if "--all" in receipt.args else SearchScope.MINE
    tasks = state.lifecycle.search(" ".join(words), user_id=receipt.user_id, scope=scope)
    if not tasks:
        return CommandReply(text=":mag: No matching tasks found.")
    return CommandReply(text=f":mag_right: Search results:\n{_format_list(state, tasks)}")


async def cmd_delete(state: AppState, receipt: CommandReceipt) -> CommandReply:
    task = state.lifecycle.delete(parse_task_id(receipt.args[0]), receipt.user_id)
    return CommandReply(text=f":wastebasket: Task #{task.id} *{task.title}* deleted.")


async def cmd_watch(state: AppState, receipt: CommandReceipt) -> CommandReply:
    task = state.lifecycle.add_watcher(parse_task_id(receipt.args[0]), receipt.user_id)
    return CommandReply(text=f":eyes: You are watching {describe_task(task, state.lifecycle.tz)}")


async def cmd_archive(state: AppState, receipt: CommandReceipt) -> CommandReply:
    task = state.lifecycle.archive(parse_task_id(receipt.args[0]), receipt.user_id)
    return CommandReply(text=f":file_cabinet: Task #{task.id} archived.")


async def cmd_assign(state: AppState, receipt: CommandReceipt) -> CommandReply:
    assignee = parse_mention(receipt.args[1])
    if assignee is None:
        return CommandReply(text="Mention the new assignee. Usage: `/todo assign <task-id> @user`", ok=False)
    task = await state.lifecycle.assign(parse_task_id(receipt.args[0]), receipt.user_id, assignee)
    return CommandReply(text=f":bust_in_silhouette: Task #{task.id} assigned to <@{task.assigned_to}>.")


registry.register("add", cmd_add, "Add a task", usage="add <title> [@watcher] [assign:@user] [due:<date>] [recurring:<daily|weekly|monthly>] [remind:<morning|lunch|eod|HH:MM>]", min_args=1)
registry.register("list", cmd_list, "List your tasks", usage="list [open|assigned|completed|archived|delegated|watching]", aliases=["ls"])
registry.register("done", cmd_done, "Mark a task as complete", usage="done <task-id>", min_args=1, task_id_arg=True, aliases=["complete"])
registry.register("search", cmd_search, "Search task titles", usage="search <keyword> [--all]", min_args=1, aliases=["find"])
registry.register("delete", cmd_delete, "Delete a task you own", usage="delete <task-id>", min_args=1, task_id_arg=True, aliases=["rm"])
registry.register("watch", cmd_watch, "Watch a task", usage="watch <task-id>", min_args=1, task_id_arg=True)
registry.register("assign", cmd_assign, "Reassign a task you own", usage="assign <task-id> @user", min_args=2, task_id_arg=True)
registry.register("archive", cmd_archive, "Archive a completed task you own", usage="archive <task-id>", min_args=1, task_id_arg=True)
registry.register("help", cmd_help, "Show this help")
