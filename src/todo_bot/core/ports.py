# src/todo_bot/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps connectors/storage swappable and makes testing easier.
"""

from typing import Any, Awaitable, Iterable, Protocol


class OutboundMessenger(Protocol):
    """
    Connector-side port: how services (lifecycle, reminder dispatcher) send text outward.

    The connector decides how to interpret:
    - room_id (channel; can be None)
    - to_user_id (direct message; can be None)
    E.g. the Slack connector posts to the user's DM when to_user_id is given.
    """

    def send_text(
            self,
            *,
            text: str,
            room_id: str | None = None,
            to_user_id: str | None = None,
    ) -> Awaitable[None]: ...


class HomePublisher(Protocol):
    """Publishes a rendered per-user persistent view (Slack App Home)."""

    def publish_home(self, *, user_id: str, view: dict[str, Any]) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    # Lifecycle API
    def add_task(
            self,
            *,
            title: str,
            created_by: str,
            assigned_to: str | None = None,
            watchers: Iterable[str] | None = None,
            note: str | None = None,
            due_at: float | None = None,
            reminder_at: float | None = None,
            recurring: Any = None,  # Recurrence (kept as Any to avoid import coupling)
            channel_id: str | None = None,
            status: Any = None,
    ) -> int: ...
    def get_task(self, task_id: int) -> Any | None: ...
    def update_task_fields(self, task_id: int, **fields: Any) -> bool: ...
    def add_watcher(self, task_id: int, user_id: str) -> bool: ...
    def transition_status(self, task_id: int, new_status: Any, *, expected: Iterable[Any]) -> bool: ...
    def complete_task(
            self,
            task_id: int,
            *,
            completed_at: float,
            next_due_at: float | None = None,
    ) -> tuple[bool, int | None]: ...
    def delete_task(self, task_id: int) -> bool: ...

    # Views
    def list_tasks(self, *, user_id: str, tab: Any, limit: int = 50) -> list[Any]: ...
    def search_tasks(self, query: str, *, user_id: str | None = None, limit: int = 50) -> list[Any]: ...

    # Reminder dispatcher API
    def list_due_reminders(self, *, now_ts: float, limit: int = 32) -> list[Any]: ...
    def try_claim_reminder(self, task_id: int, *, expected_at: float) -> bool: ...
    def reschedule_reminder(self, task_id: int, reminder_at: float) -> bool: ...
