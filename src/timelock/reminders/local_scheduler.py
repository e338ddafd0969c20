# src/timelock/reminders/local_scheduler.py

from __future__ import annotations

"""
Local notification scheduler.

A SQLite-backed queue of one-shot notifications plus a small polling loop that:
- pops notifications whose trigger time has come,
- hands each one to the DeliveryPolicy,
- keeps going on failures.

The reconciler only sees the NotificationScheduler port; this module is one
implementation of it, standing in for an OS notification service.
"""

import asyncio
import contextlib
import json
import logging
import math
import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ..core.errors import CancellationError, SchedulingError, TaskNotFound
from ..core.ports import NotificationSink, TaskRepo
from ..tasks.task_models import ReminderPayload, ScheduledNotification
from .triggers import format_reminder_time

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PermissionState:
    """Whether the user currently allows reminders. Revoking makes schedule() fail."""

    granted: bool = True


class LocalNotificationScheduler:
    def __init__(
        self,
        db_path: str | Path = "notifications.sqlite3",
        *,
        permission: PermissionState | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.permission = permission if permission is not None else PermissionState()
        self._ensure_schema()
        logger.info("LocalNotificationScheduler ready db=%s pending=%s", self._db_path, self.count_pending())

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scheduled_notifications (
                    handle TEXT PRIMARY KEY,
                    trigger_at REAL NOT NULL,
                    payload TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_trigger ON scheduled_notifications(trigger_at)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> ScheduledNotification:
        return ScheduledNotification(
            handle=str(row["handle"]),
            trigger_at=float(row["trigger_at"]),
            payload=ReminderPayload.from_dict(json.loads(row["payload"])),
        )

    # ---- NotificationScheduler port ----

    async def schedule(self, trigger_at: float, payload: ReminderPayload) -> str:
        if not self.permission.granted:
            raise SchedulingError("notification permission is not granted")

        trigger_at = float(trigger_at)
        now = time.time()
        if not math.isfinite(trigger_at):
            raise SchedulingError(f"invalid trigger time {trigger_at!r}")
        if trigger_at <= now:
            raise SchedulingError(f"trigger time {trigger_at} is not in the future")

        handle = uuid.uuid4().hex
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO scheduled_notifications(handle, trigger_at, payload, created_at) VALUES (?, ?, ?, ?)",
                (handle, trigger_at, json.dumps(payload.to_dict()), now),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise SchedulingError(f"failed to store notification: {exc}") from exc
        finally:
            conn.close()

        logger.debug(
            "Scheduled handle=%s task_id=%s offset=%smin at=%s",
            handle,
            payload.task_id,
            payload.offset_minutes,
            trigger_at,
        )
        return handle

    async def cancel(self, handle: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM scheduled_notifications WHERE handle = ?", (handle,))
            conn.commit()
        except sqlite3.Error as exc:
            raise CancellationError(handle, str(exc)) from exc
        finally:
            conn.close()

        if cur.rowcount:
            logger.debug("Cancelled handle=%s", handle)
        else:
            logger.debug("Cancel: handle=%s already gone", handle)

    async def list_all(self) -> list[ScheduledNotification]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM scheduled_notifications ORDER BY trigger_at ASC").fetchall()
            return [self._row_to_notification(r) for r in rows]
        finally:
            conn.close()

    # ---- extras ----

    def count_pending(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM scheduled_notifications").fetchone()
            return int(n)
        finally:
            conn.close()

    async def cancel_all(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM scheduled_notifications")
            conn.commit()
            logger.info("Cancelled all scheduled notifications (%d)", cur.rowcount)
            return int(cur.rowcount)
        finally:
            conn.close()

    def pop_due(self, *, now_ts: float, limit: int = 32) -> list[ScheduledNotification]:
        """
        Atomically remove and return notifications with trigger_at <= now_ts.

        One-shot: a popped notification is never returned again.
        """
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            rows = conn.execute(
                """
                SELECT *
                FROM scheduled_notifications
                WHERE trigger_at <= ?
                ORDER BY trigger_at ASC
                    LIMIT ?
                """,
                (float(now_ts), int(limit)),
            ).fetchall()
            conn.executemany(
                "DELETE FROM scheduled_notifications WHERE handle = ?",
                [(r["handle"],) for r in rows],
            )
            conn.commit()
        finally:
            conn.close()

        out: list[ScheduledNotification] = []
        for r in rows:
            try:
                out.append(self._row_to_notification(r))
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed notification handle=%s", r["handle"])
        return out


class DeliveryPolicy:
    """
    Decides what happens when a scheduled reminder fires.

    Built once in the composition root and passed by reference; there is no
    process-wide handler. A reminder whose task is gone, completed, or whose
    deadline moved since scheduling is dropped silently.
    """

    def __init__(self, task_repo: TaskRepo, sink: NotificationSink, *, sound_enabled: bool = True) -> None:
        self._tasks = task_repo
        self._sink = sink
        self.sound_enabled = sound_enabled

    async def deliver(self, notification: ScheduledNotification) -> bool:
        payload = notification.payload
        try:
            task = self._tasks.load(payload.task_id)
        except TaskNotFound:
            logger.debug("Reminder %s: task %s is gone; skipping", notification.handle, payload.task_id)
            return False

        if task.completed:
            logger.debug("Reminder %s: task %s already completed; skipping", notification.handle, task.id)
            return False

        if task.deadline_ts != payload.deadline_ts:
            logger.debug("Reminder %s: task %s deadline moved; skipping", notification.handle, task.id)
            return False

        due = datetime.fromtimestamp(task.deadline_ts).astimezone()
        title = f"⏰ {task.title}"
        body = (
            f"{task.priority.value.upper()} • Due {due.strftime('%b %d at %H:%M')} "
            f"({format_reminder_time(payload.offset_minutes)})"
        )
        await self._sink.send_notification(title=title, body=body, sound=self.sound_enabled)
        logger.info("Reminder delivered task_id=%s offset=%smin", task.id, payload.offset_minutes)
        return True


async def run_notification_dispatcher(
        scheduler: LocalNotificationScheduler,
        policy: DeliveryPolicy,
        *,
        interval_seconds: float = 15.0,
        batch_limit: int = 32,
) -> None:
    """
    Simple polling dispatcher.

    Every interval_seconds:
    - pop due notifications (they are removed from the queue)
    - hand each one to policy.deliver(...)
    A failed delivery is logged and not retried.

    To stop the dispatcher, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        now_ts = time.time()

        try:
            due = scheduler.pop_due(now_ts=now_ts, limit=int(batch_limit))
        except Exception:
            logger.exception("pop_due failed")
            due = []

        for notification in due:
            try:
                await policy.deliver(notification)
            except Exception:
                logger.exception(
                    "Reminder delivery failed handle=%s task_id=%s",
                    notification.handle,
                    notification.payload.task_id,
                )

        await asyncio.sleep(sleep_s)
