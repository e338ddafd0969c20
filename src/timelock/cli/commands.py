# src/timelock/cli/commands.py

from __future__ import annotations

import logging
import re
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..core.errors import TaskNotFound
from ..core.state import AppState
from ..reminders.triggers import format_reminder_time
from ..tasks.task_models import Priority, Task, TaskDraft, TaskPatch
from ..tasks.time_math import (
    calculate_progress,
    calculate_time_remaining,
    calculate_time_tracking_stats,
    format_detailed_countdown,
    format_time_remaining,
    get_urgency_level,
)

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^\+(\d+)([mhd])$")
_UNIT_SECONDS = {"m": 60, "h": 3600, "d": 86400}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args)
        except TaskNotFound as exc:
            return f"No such task ({exc.task_id})."
        except ValueError as exc:
            return f"Invalid input: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def parse_when(raw: str, now_ts: float | None = None) -> float:
    """
    Parse a deadline: "+90m", "+2h", "+3d" (relative) or an ISO date-time
    ("2026-01-20T15:30", local time when no offset is given).
    """
    if now_ts is None:
        now_ts = time.time()

    m = _RELATIVE_RE.match(raw.strip())
    if m:
        return now_ts + int(m.group(1)) * _UNIT_SECONDS[m.group(2)]

    try:
        dt = datetime.fromisoformat(raw.strip())
    except ValueError:
        raise ValueError(f"cannot parse deadline {raw!r} (use +30m, +2h, +1d or YYYY-MM-DDTHH:MM)") from None
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.timestamp()


def parse_offsets(raw: str) -> list[int]:
    """'60,1440' -> [60, 1440]; 'none' -> []."""
    if raw.strip().lower() in ("", "none", "off"):
        return []
    try:
        return [int(p) for p in raw.split(",") if p.strip()]
    except ValueError:
        raise ValueError(f"reminders must be comma separated minutes, got {raw!r}") from None


def _parse_kv(args: list[str]) -> tuple[dict[str, str], list[str]]:
    kv: dict[str, str] = {}
    rest: list[str] = []
    for a in args:
        key, sep, value = a.partition("=")
        if sep and key:
            kv[key.lower()] = value
        else:
            rest.append(a)
    return kv, rest


def _parse_id(args: list[str]) -> int:
    if not args:
        raise ValueError("task id is required")
    try:
        return int(args[0])
    except ValueError:
        raise ValueError(f"task id must be a number, got {args[0]!r}") from None


def _fmt_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _task_line(task: Task, now_ts: float) -> str:
    if task.completed:
        return f"#{task.id} [x] {task.title} (due {_fmt_ts(task.deadline_ts)})"
    rem = calculate_time_remaining(task.deadline_ts, now_ts)
    level = get_urgency_level(rem)
    return (
        f"#{task.id} [ ] {task.title} (due {_fmt_ts(task.deadline_ts)}, "
        f"{format_time_remaining(rem, detailed=True)}, {level.label}, "
        f"{len(task.scheduled_handles)} reminder(s))"
    )


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <deadline> <title...> [remind=60,1440] [priority=high]
    """
    kv, rest = _parse_kv(args)
    if len(rest) < 2:
        return "Usage: /add <+2h|YYYY-MM-DDTHH:MM> <title...> [remind=60,1440] [priority=high]"

    draft = TaskDraft(
        title=" ".join(rest[1:]),
        deadline_ts=parse_when(rest[0]),
        priority=Priority(kv.get("priority", "medium")),
        reminder_offsets=parse_offsets(kv["remind"]) if "remind" in kv else None,
    )
    task = await state.tasks.create(draft)
    return f"Created: {_task_line(task, time.time())}"


async def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.task_store.list_tasks()
    if not tasks:
        return "No tasks."
    now_ts = time.time()
    return "\n".join(_task_line(t, now_ts) for t in tasks)


async def cmd_show(state: AppState, args: list[str]) -> str:
    task = state.task_store.load(_parse_id(args))
    now_ts = time.time()
    rem = calculate_time_remaining(task.deadline_ts, now_ts)
    progress = calculate_progress(task.created_ts, task.deadline_ts, now_ts)

    reminders = ", ".join(format_reminder_time(m) for m in task.reminder_offsets) or "none"
    lines = [
        f"#{task.id} {task.title}",
        f"  Status: {'completed' if task.completed else 'open'} ({task.priority.value})",
        f"  Due: {_fmt_ts(task.deadline_ts)} ({format_detailed_countdown(rem)})",
        f"  Time used: {round(progress.fraction * 100)}%",
        f"  Reminders: {reminders}",
        f"  Scheduled: {len(task.scheduled_handles)}",
    ]
    if task.description:
        lines.insert(1, f"  {task.description}")
    return "\n".join(lines)


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <id> [title=New title words] [due=+2h] [remind=60,1440|none] [priority=high]

    Words that are not key=value pairs belong to the title, so
    "/edit 3 title=Read chapter_2 notes due=+1d" sets the title verbatim.
    """
    task_id = _parse_id(args)
    kv, rest = _parse_kv(args[1:])
    title_words = ([kv["title"]] if kv.get("title") else []) + rest
    if not kv and not rest:
        return "Usage: /edit <id> [title=...] [due=...] [remind=60,1440|none] [priority=...]"

    patch = TaskPatch(
        title=" ".join(title_words) if "title" in kv or rest else None,
        deadline_ts=parse_when(kv["due"]) if "due" in kv else None,
        reminder_offsets=parse_offsets(kv["remind"]) if "remind" in kv else None,
        priority=Priority(kv["priority"]) if "priority" in kv else None,
    )
    task = await state.tasks.update(task_id, patch)
    return f"Updated: {_task_line(task, time.time())}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    task = await state.tasks.toggle_completion(_parse_id(args))
    return f"Task #{task.id} {'completed' if task.completed else 'reopened'}."


async def cmd_delete(state: AppState, args: list[str]) -> str:
    task_id = _parse_id(args)
    await state.tasks.delete(task_id)
    return f"Task #{task_id} deleted."


async def cmd_pending(state: AppState, args: list[str]) -> str:
    pending = await state.scheduler.list_all()
    if not pending:
        return "No scheduled reminders."
    lines = [f"Scheduled reminders ({len(pending)}):"]
    for n in pending:
        lines.append(
            f"  {_fmt_ts(n.trigger_at)} task #{n.payload.task_id} "
            f"({format_reminder_time(n.payload.offset_minutes)}) [{n.handle[:8]}]"
        )
    return "\n".join(lines)


async def cmd_resync(state: AppState, args: list[str]) -> str:
    if args:
        task = await state.tasks.resync(_parse_id(args))
        return f"Task #{task.id}: {len(task.scheduled_handles)} reminder(s) scheduled."
    n = await state.tasks.resync_all()
    return f"Resynced {n} task(s)."


async def cmd_perm(state: AppState, args: list[str]) -> str:
    """
    /perm      -> show status
    /perm on   -> allow reminders
    /perm off  -> revoke (new reminders fail to schedule)
    """
    if not args:
        return f"Notifications are {'ALLOWED' if state.permission.granted else 'BLOCKED'}."

    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        state.permission.granted = True
        logger.debug("Notification permission granted")
        return "Notifications allowed. Use /resync to schedule missing reminders."
    if arg in ("off", "0", "false", "no"):
        state.permission.granted = False
        logger.debug("Notification permission revoked")
        return "Notifications blocked. Nothing new gets scheduled, and queued reminders are dropped when their task is edited or resynced."
    return "Usage: /perm on or /perm off."


async def cmd_stats(state: AppState, args: list[str]) -> str:
    s = calculate_time_tracking_stats(state.task_store.list_tasks())
    avg_h = s.average_time_remaining / 3600
    return (
        "Stats:\n"
        f"  Total: {s.total_tasks} (completed {s.completed_tasks})\n"
        f"  Overdue: {s.overdue_tasks}  Critical: {s.critical_tasks}  Urgent: {s.urgent_tasks}\n"
        f"  Average time left: {avg_h:.1f}h"
    )


async def cmd_clear(state: AppState, args: list[str]) -> str:
    if not args or args[0].lower() != "yes":
        return "This deletes every task. Confirm with /clear yes."
    n = await state.tasks.clear_all()
    # Catch anything scheduled outside a task's handle set (e.g. after a crash).
    await state.scheduler.cancel_all()
    return f"Deleted {n} task(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Add a task: /add +2h Title [remind=60,1440] [priority=high].")
registry.register("list", cmd_list, help_text="List tasks.", aliases=["ls"])
registry.register("show", cmd_show, help_text="Task details: /show <id>.")
registry.register("edit", cmd_edit, help_text="Edit: /edit <id> [title=words...] [due=...] [remind=...] [priority=...].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id>.", aliases=["rm"])
registry.register("pending", cmd_pending, help_text="Show scheduled reminders.")
registry.register("resync", cmd_resync, help_text="Rebuild reminders: /resync [id].")
registry.register("perm", cmd_perm, help_text="Notification permission: /perm on | /perm off.")
registry.register("stats", cmd_stats, help_text="Deadline statistics.")
registry.register("clear", cmd_clear, help_text="Delete all tasks: /clear yes.")
