# src/todo_bot/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete store and messenger into the lifecycle manager and AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import OutboundMessenger
from ..core.state import AppState
from ..tasks.schedule import load_timezone
from ..tasks.task_service import TaskLifecycle
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(messenger: OutboundMessenger, *, settings=None) -> AppState:
    """
    Create AppState around the given messenger.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    lifecycle = TaskLifecycle(
        task_store,
        messenger,
        tz=load_timezone(settings.timezone),
        list_limit=settings.list_limit,
    )
    logger.info("State ready (db=%s tz=%s)", settings.tasks_db_path, settings.timezone)
    return AppState(
        settings=settings,
        task_store=task_store,
        messenger=messenger,
        lifecycle=lifecycle,
    )
