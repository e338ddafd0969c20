# src/timelock/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the task store, notification scheduler, delivery policy,
  reconciler and task service into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleNotificationSink
from ..core.ports import NotificationSink
from ..core.state import AppState
from ..reminders.local_scheduler import DeliveryPolicy, LocalNotificationScheduler, PermissionState
from ..reminders.reconciler import ReminderReconciler
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.notifications_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, sink: NotificationSink | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the sink) injectable makes the app easier to test and
    avoids hidden global config reads. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.tasks_db_path)
    permission = PermissionState(granted=settings.notifications_enabled)
    scheduler = LocalNotificationScheduler(settings.notifications_db_path, permission=permission)
    delivery = DeliveryPolicy(
        task_store,
        sink if sink is not None else ConsoleNotificationSink(),
        sound_enabled=settings.sound_enabled,
    )
    service = TaskService(
        task_store,
        ReminderReconciler(scheduler),
        default_offsets=settings.default_reminder_offsets,
    )

    logger.debug(
        "State wired: permission=%s default_reminders=%s",
        permission.granted,
        settings.default_reminder_offsets,
    )
    return AppState(
        settings=settings,
        task_store=task_store,
        scheduler=scheduler,
        permission=permission,
        delivery=delivery,
        tasks=service,
    )
