# src/todo_bot/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the lifecycle manager, command router and connectors.

Store and transport exceptions are deliberately not part of this hierarchy:
they propagate as-is and are caught at each handler boundary.
"""


class TodoError(Exception):
    """Base class for errors that map to a user-visible message."""

    def user_message(self) -> str:
        return str(self) or "Something went wrong."


class UserInputError(TodoError):
    """Bad or missing user input (empty title, missing task id, ...)."""


class PermissionDeniedError(TodoError):
    """The actor is not allowed to perform the operation (reported to the actor only)."""


class TaskNotFoundError(TodoError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task #{task_id} not found.")
        self.task_id = task_id


class ConfigError(TodoError):
    """Startup configuration error (missing credential). Fatal."""
