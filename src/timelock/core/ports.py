# src/timelock/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The reconciler and the task service depend on Protocols instead of concrete
implementations. The SQLite store and the local notification scheduler are
just one wiring; tests use in-memory fakes.
"""

from collections.abc import Iterable
from typing import Awaitable, Protocol

from ..tasks.task_models import ReminderPayload, ScheduledNotification, Task, TaskDraft, TaskPatch


class TaskRepo(Protocol):
    """Persistence collaborator. Every method raises TaskNotFound for unknown ids."""

    def load(self, task_id: int) -> Task: ...
    def create(self, draft: TaskDraft) -> Task: ...
    def save(self, task_id: int, patch: TaskPatch) -> Task: ...
    def save_scheduled_handles(self, task_id: int, handles: Iterable[str]) -> Task: ...
    def delete(self, task_id: int) -> None: ...
    def list_tasks(self) -> list[Task]: ...


class NotificationScheduler(Protocol):
    """
    One-shot timed notifications.

    - schedule: raises SchedulingError when the trigger cannot be scheduled
    - cancel: idempotent; unknown handles are not an error
    - list_all: diagnostics / recovery only
    """

    def schedule(self, trigger_at: float, payload: ReminderPayload) -> Awaitable[str]: ...
    def cancel(self, handle: str) -> Awaitable[None]: ...
    def list_all(self) -> Awaitable[list[ScheduledNotification]]: ...


class NotificationSink(Protocol):
    """Where a fired reminder is finally surfaced (console, desktop, chat...)."""

    def send_notification(self, *, title: str, body: str, sound: bool = True) -> Awaitable[None]: ...
