# src/timelock/tasks/task_models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


# Predefined reminder choices (minutes before deadline).
REMINDER_OPTIONS: dict[str, int] = {
    "ONE_MINUTE": 1,
    "FIVE_MINUTES": 5,
    "FIFTEEN_MINUTES": 15,
    "THIRTY_MINUTES": 30,
    "ONE_HOUR": 60,
    "TWO_HOURS": 120,
    "ONE_DAY": 1440,
    "TWO_DAYS": 2880,
    "ONE_WEEK": 10080,
    "TWO_WEEKS": 20160,
}

DEFAULT_REMINDER_OFFSETS: tuple[int, ...] = (REMINDER_OPTIONS["ONE_DAY"],)


def normalize_offsets(offsets: Iterable[Any]) -> list[int]:
    """
    Validate reminder offsets: positive integer minutes, duplicates dropped,
    first-seen order kept. Raises ValueError on anything else.
    """
    out: list[int] = []
    seen: set[int] = set()
    for raw in offsets:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError(f"reminder offset must be an integer number of minutes, got {raw!r}")
        if raw <= 0:
            raise ValueError(f"reminder offset must be positive, got {raw}")
        if raw in seen:
            continue
        seen.add(raw)
        out.append(raw)
    return out


@dataclass(slots=True)
class Task:
    id: int
    title: str
    deadline_ts: float
    created_ts: float
    updated_ts: float
    completed: bool

    priority: Priority = Priority.MEDIUM
    description: str | None = None
    category_id: int | None = None

    reminder_offsets: list[int] = field(default_factory=list)
    # Owned by the reminder reconciler: handles believed live in the notification scheduler.
    scheduled_handles: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TaskDraft:
    """
    Input for TaskService.create / TaskStore.create.

    reminder_offsets=None means "use the configured default reminders".
    """

    title: str
    deadline_ts: float
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    category_id: int | None = None
    completed: bool = False
    reminder_offsets: list[int] | None = None

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("title is required")
        self.title = self.title.strip()
        self.priority = Priority(self.priority)
        if self.reminder_offsets is not None:
            self.reminder_offsets = normalize_offsets(self.reminder_offsets)


@dataclass(slots=True)
class TaskPatch:
    """Partial update. None means "leave unchanged"."""

    title: str | None = None
    description: str | None = None
    deadline_ts: float | None = None
    priority: Priority | None = None
    category_id: int | None = None
    completed: bool | None = None
    reminder_offsets: list[int] | None = None

    def __post_init__(self) -> None:
        if self.title is not None:
            if not self.title.strip():
                raise ValueError("title must not be empty")
            self.title = self.title.strip()
        if self.priority is not None:
            self.priority = Priority(self.priority)
        if self.reminder_offsets is not None:
            self.reminder_offsets = normalize_offsets(self.reminder_offsets)

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (
                self.title,
                self.description,
                self.deadline_ts,
                self.priority,
                self.category_id,
                self.completed,
                self.reminder_offsets,
            )
        )


@dataclass(slots=True, frozen=True)
class ReminderPayload:
    """
    Data attached to one scheduled notification.

    Enough for the delivery side to look the task up again and decide
    whether the reminder is still relevant.
    """

    task_id: int
    offset_minutes: int
    deadline_ts: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "offset_minutes": self.offset_minutes,
            "deadline_ts": self.deadline_ts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReminderPayload:
        return cls(
            task_id=int(data["task_id"]),
            offset_minutes=int(data["offset_minutes"]),
            deadline_ts=float(data["deadline_ts"]),
        )


@dataclass(slots=True, frozen=True)
class ScheduledNotification:
    handle: str
    trigger_at: float
    payload: ReminderPayload
