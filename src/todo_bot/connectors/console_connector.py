# src/todo_bot/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleMessenger:
    """OutboundMessenger that prints notifications to stdout (local runs, no Slack)."""

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        target = f"@{to_user_id}" if to_user_id else f"#{room_id or 'console'}"
        _print_ts(f"[NOTIFY {target}] {text}")


async def run_console_loop(state: AppState, *, user_id: str) -> None:
    """
    REPL that feeds `/todo ...` (or bare `add ...`) lines through the command router
    as `user_id`. Type /exit to quit.
    """
    logger.info("Console connector started (user=%s).", user_id)
    _print_ts("[CONSOLE] Type /todo commands (e.g. `/todo add Ship release due:friday`). Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, ">>> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if line.lower().startswith("/todo"):
            line = line[len("/todo"):]

        reply = await command_registry.handle(state, line, user_id=user_id, channel_id="console")
        _print_ts(reply.text)

    logger.info("Console connector finished.")
