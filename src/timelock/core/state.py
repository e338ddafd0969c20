# src/timelock/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..reminders.local_scheduler import DeliveryPolicy, LocalNotificationScheduler, PermissionState
from ..tasks.task_service import TaskService
from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    task_store: TaskStore
    scheduler: LocalNotificationScheduler
    permission: PermissionState
    delivery: DeliveryPolicy
    tasks: TaskService
