# src/todo_bot/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.task_service import TaskLifecycle
from .ports import OutboundMessenger, TaskRepo


@dataclass
class AppState:
    """
    Everything a connector needs, built once at startup by the composition root
    (cli/bootstrap.py) and passed explicitly to handlers.
    """

    # Store Settings on the state for easy access in other modules later.
    settings: Any

    task_store: TaskRepo
    messenger: OutboundMessenger
    lifecycle: TaskLifecycle
