# src/timelock/reminders/reconciler.py

from __future__ import annotations

"""
Reminder reconciler.

Keeps the notifications scheduled for a task in line with the task's
(deadline, reminder_offsets, completed) state after every mutation:

- decides what the transition previous -> new requires (plan_reconciliation),
- cancels the previously scheduled handles (best-effort, one by one),
- schedules one notification per future trigger (each attempted independently),
- reports per-item outcomes so the caller can persist exactly the handles
  that were really scheduled.

reconcile() never raises: reminder problems must not fail a task mutation.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from ..core.errors import CancellationError, SchedulingError
from ..core.ports import NotificationScheduler
from ..tasks.task_models import ReminderPayload, Task
from .triggers import Trigger, compute_triggers

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    SCHEDULE = "schedule"  # schedule from scratch
    CLEAR = "clear"  # completed: cancel everything, keep nothing
    RESCHEDULE = "reschedule"  # deadline/offsets changed: cancel everything, schedule anew
    NOOP = "noop"  # nothing relevant changed
    REMOVE = "remove"  # task deleted: cancel everything, nothing to persist
    RESYNC = "resync"  # explicit sweep: cancel everything, rebuild from current state


def _schedule_inputs_changed(previous: Task, new: Task) -> bool:
    if previous.deadline_ts != new.deadline_ts:
        return True
    return set(previous.reminder_offsets) != set(new.reminder_offsets)


def plan_reconciliation(previous: Task | None, new: Task | None) -> ReconcileAction:
    """
    Transition table:

        none          -> open           SCHEDULE
        none          -> completed      NOOP (nothing exists, nothing to schedule)
        open          -> completed      CLEAR
        completed     -> open           SCHEDULE (from the current time)
        open          -> open, changed  RESCHEDULE
        open          -> open, same     NOOP
        completed     -> completed      CLEAR if stale handles remain, else NOOP
        any           -> deleted        REMOVE

    Title/description/priority/category never affect scheduling.
    """
    if new is None:
        if previous is None:
            raise ValueError("reconciliation needs a previous or a new task snapshot")
        return ReconcileAction.REMOVE

    if previous is None:
        return ReconcileAction.NOOP if new.completed else ReconcileAction.SCHEDULE

    if new.completed:
        if previous.completed and not previous.scheduled_handles:
            return ReconcileAction.NOOP
        return ReconcileAction.CLEAR

    if previous.completed:
        return ReconcileAction.SCHEDULE

    if _schedule_inputs_changed(previous, new):
        return ReconcileAction.RESCHEDULE

    return ReconcileAction.NOOP


@dataclass(slots=True, frozen=True)
class ScheduleOutcome:
    trigger: Trigger
    handle: str | None = None
    error: SchedulingError | None = None

    @property
    def ok(self) -> bool:
        return self.handle is not None


@dataclass(slots=True, frozen=True)
class CancelOutcome:
    handle: str
    error: CancellationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ReconcileResult:
    """
    Outcome of one reconciliation pass.

    handles:
    - None  -> leave the persisted handle set untouched (NOOP) or there is no
               record left to persist onto (REMOVE)
    - list  -> the complete new handle set to persist (may be empty)
    """

    task_id: int
    action: ReconcileAction
    scheduled: list[ScheduleOutcome] = field(default_factory=list)
    cancelled: list[CancelOutcome] = field(default_factory=list)
    handles: list[str] | None = None

    @property
    def scheduling_failures(self) -> list[ScheduleOutcome]:
        return [o for o in self.scheduled if not o.ok]

    @property
    def cancellation_failures(self) -> list[CancelOutcome]:
        return [o for o in self.cancelled if not o.ok]

    def successful_handles(self) -> list[str]:
        return [o.handle for o in self.scheduled if o.handle is not None]


class ReminderReconciler:
    def __init__(self, scheduler: NotificationScheduler) -> None:
        self._scheduler = scheduler

    @property
    def scheduler(self) -> NotificationScheduler:
        return self._scheduler

    async def reconcile(
        self,
        previous: Task | None,
        new: Task | None,
        *,
        now_ts: float | None = None,
    ) -> ReconcileResult:
        """
        Bring the scheduled notifications in line with `new`.

        `previous` is the snapshot before the persistence write (None on create),
        `new` the snapshot after it (None on delete).
        """
        action = plan_reconciliation(previous, new)
        return await self._run(action, previous, new, now_ts=now_ts)

    async def resync(self, task: Task, *, now_ts: float | None = None) -> ReconcileResult:
        """Cancel whatever the task believes is live and rebuild from its current state."""
        return await self._run(ReconcileAction.RESYNC, task, task, now_ts=now_ts)

    async def _run(
        self,
        action: ReconcileAction,
        previous: Task | None,
        new: Task | None,
        *,
        now_ts: float | None,
    ) -> ReconcileResult:
        if now_ts is None:
            now_ts = time.time()

        subject = new if new is not None else previous
        assert subject is not None
        result = ReconcileResult(task_id=subject.id, action=action)

        try:
            if action is ReconcileAction.NOOP:
                if previous is None:
                    result.handles = []
                logger.debug("Task %s reminders: noop", subject.id)
                return result

            if previous is not None and previous.scheduled_handles:
                await self._cancel_all(previous.scheduled_handles, result)

            if action is ReconcileAction.REMOVE:
                return result

            assert new is not None
            if new.completed:
                result.handles = []
            else:
                await self._schedule_all(new, now_ts, result)
                result.handles = result.successful_handles()

        except Exception:
            # Only reached on programming/data errors; keep whatever really got scheduled.
            logger.exception("Reconciliation crashed task_id=%s action=%s", subject.id, action.value)
            if action is not ReconcileAction.REMOVE:
                result.handles = result.successful_handles()

        self._log_result(result)
        return result

    async def _cancel_all(self, handles: list[str], result: ReconcileResult) -> None:
        for handle in dict.fromkeys(handles):
            try:
                await self._scheduler.cancel(handle)
            except CancellationError as exc:
                logger.warning("Cancel failed task_id=%s handle=%s: %s", result.task_id, handle, exc)
                result.cancelled.append(CancelOutcome(handle=handle, error=exc))
                continue
            except Exception as exc:
                logger.exception("Cancel crashed task_id=%s handle=%s", result.task_id, handle)
                result.cancelled.append(CancelOutcome(handle=handle, error=CancellationError(handle, str(exc))))
                continue
            result.cancelled.append(CancelOutcome(handle=handle))

    async def _schedule_all(self, task: Task, now_ts: float, result: ReconcileResult) -> None:
        triggers = compute_triggers(task.deadline_ts, task.reminder_offsets, now_ts)
        if not triggers:
            logger.debug(
                "Task %s: no future reminders (deadline=%s offsets=%s)",
                task.id,
                task.deadline_ts,
                task.reminder_offsets,
            )

        for trig in triggers:
            payload = ReminderPayload(
                task_id=task.id,
                offset_minutes=trig.offset_minutes,
                deadline_ts=task.deadline_ts,
            )
            try:
                handle = await self._scheduler.schedule(trig.trigger_at, payload)
            except SchedulingError as exc:
                logger.warning(
                    "Schedule failed task_id=%s offset=%smin: %s", task.id, trig.offset_minutes, exc
                )
                result.scheduled.append(ScheduleOutcome(trigger=trig, error=exc))
                continue
            except Exception as exc:
                logger.exception("Schedule crashed task_id=%s offset=%smin", task.id, trig.offset_minutes)
                result.scheduled.append(ScheduleOutcome(trigger=trig, error=SchedulingError(str(exc))))
                continue
            result.scheduled.append(ScheduleOutcome(trigger=trig, handle=handle))

    @staticmethod
    def _log_result(result: ReconcileResult) -> None:
        logger.info(
            "Task %s reminders: action=%s scheduled=%d/%d cancelled=%d/%d",
            result.task_id,
            result.action.value,
            len(result.successful_handles()),
            len(result.scheduled),
            len(result.cancelled) - len(result.cancellation_failures),
            len(result.cancelled),
        )
