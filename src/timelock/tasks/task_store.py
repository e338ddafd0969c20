# src/timelock/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..core.errors import TaskNotFound
from .task_models import Priority, Task, TaskDraft, TaskPatch

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    reminder_offsets and scheduled_handles are stored as JSON arrays.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    deadline REAL NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    category_id INTEGER,
                    notifications TEXT NOT NULL DEFAULT '[]',
                    notification_ids TEXT NOT NULL DEFAULT '[]'
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT")
            add_col("priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("category_id", "INTEGER")
            add_col("notifications", "TEXT NOT NULL DEFAULT '[]'")
            add_col("notification_ids", "TEXT NOT NULL DEFAULT '[]'")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_deadline ON tasks(completed, deadline)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _list_to_str(values: Iterable[Any]) -> str:
        return json.dumps(list(values))

    @staticmethod
    def _str_to_list(s: str | None) -> list[Any]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("TaskStore: malformed JSON list column %r; treating as empty", s)
            return []
        return val if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            deadline_ts=float(row["deadline"]),
            created_ts=float(row["created_at"] or 0.0),
            updated_ts=float(row["updated_at"] or 0.0),
            completed=bool(row["completed"]),
            priority=Priority.from_db(row["priority"]),
            category_id=row["category_id"],
            reminder_offsets=[int(v) for v in self._str_to_list(row["notifications"])],
            scheduled_handles=[str(v) for v in self._str_to_list(row["notification_ids"])],
        )

    def _fetch(self, conn: sqlite3.Connection, task_id: int) -> Task:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
        if row is None:
            raise TaskNotFound(task_id)
        return self._row_to_task(row)

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def load(self, task_id: int) -> Task:
        conn = self._get_conn()
        try:
            return self._fetch(conn, task_id)
        finally:
            conn.close()

    def list_tasks(self) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM tasks ORDER BY deadline ASC, id ASC").fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def create(self, draft: TaskDraft) -> Task:
        """Insert a new task. scheduled_handles always starts empty."""
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    title, description, deadline, created_at, updated_at,
                    completed, priority, category_id, notifications, notification_ids
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, '[]')
                """,
                (
                    draft.title,
                    draft.description,
                    float(draft.deadline_ts),
                    now,
                    now,
                    1 if draft.completed else 0,
                    draft.priority.value,
                    draft.category_id,
                    self._list_to_str(draft.reminder_offsets or []),
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task = self._fetch(conn, rowid)
            logger.debug(
                "Task created id=%s deadline=%s offsets=%s", task.id, task.deadline_ts, task.reminder_offsets
            )
            return task
        finally:
            conn.close()

    def save(self, task_id: int, patch: TaskPatch) -> Task:
        """Apply a partial update and return the stored row."""
        fields: list[str] = []
        params: list[Any] = []

        if patch.title is not None:
            fields.append("title = ?")
            params.append(patch.title)

        if patch.description is not None:
            fields.append("description = ?")
            params.append(patch.description)

        if patch.deadline_ts is not None:
            fields.append("deadline = ?")
            params.append(float(patch.deadline_ts))

        if patch.completed is not None:
            fields.append("completed = ?")
            params.append(1 if patch.completed else 0)

        if patch.priority is not None:
            fields.append("priority = ?")
            params.append(patch.priority.value)

        if patch.category_id is not None:
            fields.append("category_id = ?")
            params.append(int(patch.category_id))

        if patch.reminder_offsets is not None:
            fields.append("notifications = ?")
            params.append(self._list_to_str(patch.reminder_offsets))

        conn = self._get_conn()
        try:
            if not fields:
                return self._fetch(conn, task_id)

            fields.append("updated_at = ?")
            params.append(time.time())
            params.append(int(task_id))

            cur = conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            conn.commit()
            if cur.rowcount != 1:
                raise TaskNotFound(task_id)
            return self._fetch(conn, task_id)
        finally:
            conn.close()

    def save_scheduled_handles(self, task_id: int, handles: Iterable[str]) -> Task:
        """Rewrite the handle set in full. Does not bump updated_at (bookkeeping only)."""
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE tasks SET notification_ids = ? WHERE id = ?",
                (self._list_to_str(handles), int(task_id)),
            )
            conn.commit()
            if cur.rowcount != 1:
                raise TaskNotFound(task_id)
            return self._fetch(conn, task_id)
        finally:
            conn.close()

    def delete(self, task_id: int) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            if cur.rowcount != 1:
                raise TaskNotFound(task_id)
            logger.debug("Task deleted id=%s", task_id)
        finally:
            conn.close()
