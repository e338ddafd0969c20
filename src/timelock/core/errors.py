# src/timelock/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the task store, the reminder reconciler and the
notification scheduler.

Only TaskNotFound and persistence errors reach callers of TaskService.
SchedulingError / CancellationError are recovered inside the reconciler.
"""


class TimelockError(Exception):
    """Base class for all timelock errors."""


class TaskNotFound(TimelockError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class SchedulingError(TimelockError):
    """One trigger could not be scheduled (bad time, permission revoked, backend error)."""


class CancellationError(TimelockError):
    """A cancel call failed for a handle believed to be live."""

    def __init__(self, handle: str, reason: str = "") -> None:
        msg = f"failed to cancel notification {handle}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.handle = handle
