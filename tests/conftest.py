# tests/conftest.py

from __future__ import annotations

from datetime import UTC
from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_bot.core.state import AppState
from todo_bot.tasks.task_service import TaskLifecycle
from todo_bot.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeMessenger


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        timezone="UTC",
        list_limit=50,
        reminder_interval_seconds=0.01,
        reminder_retry_seconds=60.0,
        reminder_batch_limit=32,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    # Real SQLite store: its queries are part of what we want to test.
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def lifecycle(store: TaskStore, messenger: FakeMessenger, clock: FakeClock) -> TaskLifecycle:
    return TaskLifecycle(store, messenger, tz=UTC, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, messenger: FakeMessenger, lifecycle: TaskLifecycle) -> AppState:
    return AppState(settings=settings, task_store=store, messenger=messenger, lifecycle=lifecycle)
