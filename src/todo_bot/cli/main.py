# src/todo_bot/cli/main.py

"""
CLI entrypoint.

Initializes logging, validates configuration, builds AppState, then runs on one
asyncio loop:
- the reminder dispatcher (background task),
- the Slack connector (socket mode when an app token is set, HTTP otherwise),
  or the console REPL with --console / TODO_CONSOLE_ENABLED.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from aiohttp import web
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler

from ..cli.bootstrap import create_initial_state
from ..config import Settings, get_settings
from ..connectors.console_connector import ConsoleMessenger, run_console_loop
from ..connectors.slack_connector import SlackMessenger, create_slack_app, register_handlers
from ..core.errors import ConfigError
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..tasks.reminder_dispatcher import run_reminder_dispatcher

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


def _start_dispatcher(state: AppState) -> asyncio.Task[None]:
    settings = state.settings
    return asyncio.create_task(
        run_reminder_dispatcher(
            state.task_store,
            state.messenger,
            interval_seconds=settings.reminder_interval_seconds,
            retry_delay_seconds=settings.reminder_retry_seconds,
            batch_limit=settings.reminder_batch_limit,
            tz=state.lifecycle.tz,
        ),
        name="reminder-dispatcher",
    )


async def _stop_task(task: asyncio.Task[None]) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Some platforms (Windows) do not support loop signal handlers.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)


async def run_slack(settings: Settings) -> None:
    settings.require_slack_credentials()

    app = create_slack_app(settings)
    messenger = SlackMessenger(app.client)
    state = create_initial_state(messenger, settings=settings)
    register_handlers(app, state, publisher=messenger)

    stop = asyncio.Event()
    _install_signal_handlers(stop)
    dispatcher = _start_dispatcher(state)

    try:
        if settings.socket_mode:
            handler = AsyncSocketModeHandler(app, settings.slack_app_token)
            await handler.connect_async()
            logger.info("Slack connector started (socket mode).")
            try:
                await stop.wait()
            finally:
                await handler.close_async()
        else:
            server = app.server(port=settings.http_port, path="/slack/events")
            runner = web.AppRunner(server.web_app)
            await runner.setup()
            site = web.TCPSite(runner, port=settings.http_port)
            await site.start()
            logger.info("Slack connector listening on :%d/slack/events", settings.http_port)
            try:
                await stop.wait()
            finally:
                await runner.cleanup()
    finally:
        await _stop_task(dispatcher)
        logger.info("Slack connector stopped.")


async def run_console(settings: Settings) -> None:
    state = create_initial_state(ConsoleMessenger(), settings=settings)
    dispatcher = _start_dispatcher(state)
    try:
        await run_console_loop(state, user_id=settings.console_user_id)
    finally:
        await _stop_task(dispatcher)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="todo-bot", description="Slack /todo bot with App Home and reminders.")
    parser.add_argument("--console", action="store_true", help="run a local REPL instead of the Slack connector")
    args = parser.parse_args(argv)

    settings = get_settings()

    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        if args.console or settings.console_enabled:
            asyncio.run(run_console(settings))
        else:
            asyncio.run(run_slack(settings))
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted.")

    logger.info("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
