# src/timelock/reminders/triggers.py

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Trigger:
    offset_minutes: int
    trigger_at: float


def compute_triggers(
    deadline_ts: float,
    offsets: Iterable[int],
    now_ts: float | None = None,
) -> list[Trigger]:
    """
    Turn "N minutes before deadline" offsets into absolute trigger times.

    Only triggers strictly after now_ts are returned: a reminder for a moment
    that already passed is never scheduled. Each offset appears at most once,
    in first-seen order.
    """
    if now_ts is None:
        now_ts = time.time()

    out: list[Trigger] = []
    seen: set[int] = set()
    for offset in offsets:
        minutes = int(offset)
        if minutes in seen:
            continue
        seen.add(minutes)

        trigger_at = float(deadline_ts) - minutes * 60
        if trigger_at <= now_ts:
            continue
        out.append(Trigger(offset_minutes=minutes, trigger_at=trigger_at))
    return out


def format_reminder_time(minutes_before: int) -> str:
    if minutes_before < 60:
        return f"{minutes_before} minute{'' if minutes_before == 1 else 's'} before due"
    if minutes_before < 1440:
        hours = minutes_before // 60
        return f"{hours} hour{'' if hours == 1 else 's'} before due"
    days = minutes_before // 1440
    return f"{days} day{'' if days == 1 else 's'} before due"
