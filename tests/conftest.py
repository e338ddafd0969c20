# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from timelock.cli.bootstrap import create_initial_state
from timelock.core.state import AppState
from timelock.reminders.reconciler import ReminderReconciler
from timelock.tasks.task_service import TaskService
from timelock.tasks.task_store import TaskStore

from .fakes import FakeNotificationScheduler, RecordingSink


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="timelock-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        notifications_db_path=tmp_path / "notifications.sqlite3",
        default_reminder_offsets=[1440],
        notifications_enabled=True,
        sound_enabled=False,
        dispatch_interval_seconds=0.01,
        resync_on_start=False,
    )


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


@pytest.fixture()
def scheduler() -> FakeNotificationScheduler:
    return FakeNotificationScheduler()


@pytest.fixture()
def service(task_store: TaskStore, scheduler: FakeNotificationScheduler) -> TaskService:
    """
    TaskService over a real SQLite TaskStore and the in-memory scheduler.

    NOTE: the store stays real because handle persistence is part of what we test.
    """
    return TaskService(task_store, ReminderReconciler(scheduler), default_offsets=[1440])


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def state(settings: SimpleNamespace, sink: RecordingSink) -> AppState:
    """AppState wired exactly like the CLI, with a recording sink instead of the console."""
    return create_initial_state(settings=settings, sink=sink)
