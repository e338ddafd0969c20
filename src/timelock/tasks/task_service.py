# src/timelock/tasks/task_service.py

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable

from ..core.errors import TaskNotFound
from ..core.ports import TaskRepo
from ..reminders.reconciler import ReconcileResult, ReminderReconciler
from .task_models import DEFAULT_REMINDER_OFFSETS, Task, TaskDraft, TaskPatch, normalize_offsets

logger = logging.getLogger(__name__)


class TaskService:
    """
    Task mutations with reminder bookkeeping.

    Every operation follows the same order:
      1. persist the visible task fields (errors propagate, nothing else runs)
      2. reconcile reminders against the new state (never raises)
      3. persist the resulting handle set

    A crash between 1 and 3 leaves the task itself correct; the next mutation
    or resync() re-establishes the reminders. When step 3 fails in-process the
    task is marked, and its next mutation rebuilds reminders from scratch
    instead of diffing against a stored handle set that is no longer live.
    """

    def __init__(
        self,
        store: TaskRepo,
        reconciler: ReminderReconciler,
        *,
        default_offsets: Iterable[int] = DEFAULT_REMINDER_OFFSETS,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self.default_offsets = normalize_offsets(default_offsets)
        self._needs_resync: set[int] = set()

    def needs_resync(self, task_id: int) -> bool:
        return task_id in self._needs_resync

    async def create(self, draft: TaskDraft, *, now_ts: float | None = None) -> Task:
        if draft.reminder_offsets is None:
            draft = dataclasses.replace(draft, reminder_offsets=list(self.default_offsets))

        task = self._store.create(draft)
        logger.info("Task created id=%s title=%r", task.id, task.title)

        result = await self._reconciler.reconcile(None, task, now_ts=now_ts)
        return await self._persist_handles(task, result)

    async def update(self, task_id: int, patch: TaskPatch, *, now_ts: float | None = None) -> Task:
        previous = self._store.load(task_id)
        task = self._store.save(task_id, patch)
        logger.info("Task updated id=%s", task_id)

        result = await self._reconcile(previous, task, now_ts=now_ts)
        return await self._persist_handles(task, result)

    async def toggle_completion(self, task_id: int, *, now_ts: float | None = None) -> Task:
        previous = self._store.load(task_id)
        task = self._store.save(task_id, TaskPatch(completed=not previous.completed))
        logger.info("Task %s -> %s", task_id, "completed" if task.completed else "reopened")

        result = await self._reconcile(previous, task, now_ts=now_ts)
        return await self._persist_handles(task, result)

    async def delete(self, task_id: int) -> None:
        previous = self._store.load(task_id)
        # Cancel first: a removed record can no longer tell us what to cancel.
        await self._reconciler.reconcile(previous, None)
        self._store.delete(task_id)
        self._needs_resync.discard(task_id)
        logger.info("Task deleted id=%s", task_id)

    async def resync(self, task_id: int, *, now_ts: float | None = None) -> Task:
        """Rebuild one task's reminders from scratch."""
        task = self._store.load(task_id)
        result = await self._reconciler.resync(task, now_ts=now_ts)
        return await self._persist_handles(task, result)

    async def resync_all(self, *, now_ts: float | None = None) -> int:
        """
        Reconciliation sweep over every stored task.

        Useful after the notification backend lost its state (reinstall,
        cleared database, clock change). Returns the number of tasks processed.
        """
        count = 0
        for task in self._store.list_tasks():
            try:
                await self.resync(task.id, now_ts=now_ts)
            except TaskNotFound:
                # deleted while the sweep was running
                continue
            count += 1
        logger.info("Resync finished: %d task(s)", count)
        return count

    async def clear_all(self) -> int:
        """Delete every task, cancelling its reminders first. Returns the number deleted."""
        deleted = 0
        for task in self._store.list_tasks():
            try:
                await self.delete(task.id)
            except TaskNotFound:
                continue
            deleted += 1
        logger.info("Cleared all tasks: %d deleted", deleted)
        return deleted

    async def _reconcile(self, previous: Task, task: Task, *, now_ts: float | None) -> ReconcileResult:
        if task.id in self._needs_resync:
            logger.info("Rebuilding reminders after an earlier handle write failure task_id=%s", task.id)
            return await self._reconciler.resync(task, now_ts=now_ts)
        return await self._reconciler.reconcile(previous, task, now_ts=now_ts)

    async def _persist_handles(self, task: Task, result: ReconcileResult) -> Task:
        if result.handles is None:
            return task

        try:
            saved = self._store.save_scheduled_handles(task.id, result.handles)
        except Exception:
            logger.exception("Failed to persist reminder handles task_id=%s", task.id)
        else:
            self._needs_resync.discard(task.id)
            return saved

        # The stored handle set is stale now; the next mutation must rebuild.
        self._needs_resync.add(task.id)

        # Nobody will know about these handles; take them back rather than leak them.
        for handle in result.handles:
            try:
                await self._reconciler.scheduler.cancel(handle)
            except Exception:
                logger.warning("Rollback cancel failed handle=%s task_id=%s", handle, task.id)
        task.scheduled_handles = []
        return task
