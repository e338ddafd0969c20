# src/timelock/tasks/time_math.py

"""
Deadline arithmetic shared by the console views and reminder rendering.

All functions are pure: timestamps in, small records out. `now_ts` defaults
to the current time only for convenience at call sites.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from .task_models import Task

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


@dataclass(slots=True, frozen=True)
class TimeRemaining:
    days: int
    hours: int
    minutes: int
    seconds: int
    total_seconds: float  # signed: negative when overdue
    is_overdue: bool
    is_urgent: bool  # < 24h left
    is_critical: bool  # < 1h left


@dataclass(slots=True, frozen=True)
class TimeProgress:
    fraction: float  # 0..1
    elapsed: float
    total: float
    remaining: float


class UrgencyLevel(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"
    OVERDUE = "overdue"

    @property
    def label(self) -> str:
        return _URGENCY_LABELS[self]


_URGENCY_LABELS = {
    UrgencyLevel.NORMAL: "On Track",
    UrgencyLevel.WARNING: "Soon",
    UrgencyLevel.URGENT: "Urgent",
    UrgencyLevel.CRITICAL: "Critical",
    UrgencyLevel.OVERDUE: "Overdue",
}


def calculate_time_remaining(deadline_ts: float, now_ts: float | None = None) -> TimeRemaining:
    if now_ts is None:
        now_ts = time.time()

    left = float(deadline_ts) - float(now_ts)
    is_overdue = left < 0
    span = int(abs(left))

    return TimeRemaining(
        days=span // DAY,
        hours=(span % DAY) // HOUR,
        minutes=(span % HOUR) // MINUTE,
        seconds=span % MINUTE,
        total_seconds=left,
        is_overdue=is_overdue,
        is_urgent=not is_overdue and left < DAY,
        is_critical=not is_overdue and left < HOUR,
    )


def calculate_progress(created_ts: float, deadline_ts: float, now_ts: float | None = None) -> TimeProgress:
    """
    Fraction of the created -> deadline window already used, clamped to [0, 1].

    A window with deadline <= created is degenerate and always reports 1.
    """
    if now_ts is None:
        now_ts = time.time()

    total = float(deadline_ts) - float(created_ts)
    elapsed = float(now_ts) - float(created_ts)
    remaining = float(deadline_ts) - float(now_ts)

    if total <= 0:
        fraction = 1.0
    else:
        fraction = min(max(elapsed / total, 0.0), 1.0)

    return TimeProgress(fraction=fraction, elapsed=elapsed, total=total, remaining=remaining)


def get_urgency_level(remaining: TimeRemaining) -> UrgencyLevel:
    if remaining.is_overdue:
        return UrgencyLevel.OVERDUE
    if remaining.is_critical:
        return UrgencyLevel.CRITICAL
    if remaining.is_urgent:
        return UrgencyLevel.URGENT
    if remaining.days <= 3:
        return UrgencyLevel.WARNING
    return UrgencyLevel.NORMAL


def format_time_remaining(remaining: TimeRemaining, detailed: bool = False) -> str:
    d, h, m = remaining.days, remaining.hours, remaining.minutes

    if remaining.is_overdue:
        if not detailed:
            return "Overdue"
        if d > 0:
            return f"{d}d {h}h overdue"
        if h > 0:
            return f"{h}h {m}m overdue"
        return f"{m}m overdue"

    if detailed:
        if d > 0:
            return f"{d}d {h}h remaining"
        if h > 0:
            return f"{h}h {m}m remaining"
        return f"{m}m remaining"

    if d > 0:
        return f"{d}d"
    if h > 0:
        return f"{h}h"
    return f"{m}m"


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def format_detailed_countdown(remaining: TimeRemaining) -> str:
    d, h, m, s = remaining.days, remaining.hours, remaining.minutes, remaining.seconds

    parts: list[str] = []
    if d > 0:
        parts.append(_plural(d, "day"))
    if h > 0 or d > 0:
        parts.append(_plural(h, "hour"))
    if m > 0 or h > 0 or d > 0:
        parts.append(_plural(m, "minute"))
    if d == 0 and h == 0:
        parts.append(_plural(s, "second"))

    text = ", ".join(parts)
    return f"{text} overdue" if remaining.is_overdue else f"{text} remaining"


@dataclass(slots=True, frozen=True)
class TimeTrackingStats:
    total_tasks: int
    overdue_tasks: int
    urgent_tasks: int
    critical_tasks: int
    completed_tasks: int
    average_time_remaining: float  # seconds, active non-overdue tasks only


def calculate_time_tracking_stats(tasks: Iterable[Task], now_ts: float | None = None) -> TimeTrackingStats:
    if now_ts is None:
        now_ts = time.time()

    total = overdue = urgent = critical = completed = 0
    active = 0
    remaining_sum = 0.0

    for task in tasks:
        total += 1
        if task.completed:
            completed += 1
            continue

        rem = calculate_time_remaining(task.deadline_ts, now_ts)
        if rem.is_overdue:
            overdue += 1
            continue

        active += 1
        remaining_sum += rem.total_seconds
        # critical is a subset of urgent; count each task once
        if rem.is_critical:
            critical += 1
        elif rem.is_urgent:
            urgent += 1

    return TimeTrackingStats(
        total_tasks=total,
        overdue_tasks=overdue,
        urgent_tasks=urgent,
        critical_tasks=critical,
        completed_tasks=completed,
        average_time_remaining=remaining_sum / active if active else 0.0,
    )
