# tests/test_task_service.py

from __future__ import annotations

import sqlite3

import pytest

from timelock.core.errors import TaskNotFound
from timelock.reminders.reconciler import ReminderReconciler
from timelock.tasks.task_models import TaskDraft, TaskPatch
from timelock.tasks.task_service import TaskService
from timelock.tasks.task_store import TaskStore

from .fakes import DAY, HOUR, NOW, FakeNotificationScheduler


class BrokenWritesStore(TaskStore):
    """TaskStore whose visible-field writes fail (disk full, locked db...)."""

    def save(self, task_id, patch):
        raise sqlite3.OperationalError("database is locked")


class BrokenHandleStore(TaskStore):
    """TaskStore that can write tasks but not their reminder handles."""

    def save_scheduled_handles(self, task_id, handles):
        raise sqlite3.OperationalError("disk I/O error")


class FlakyHandleStore(TaskStore):
    """TaskStore whose handle writes fail while `handle_failures` > 0."""

    handle_failures = 0

    def save_scheduled_handles(self, task_id, handles):
        if self.handle_failures > 0:
            self.handle_failures -= 1
            raise sqlite3.OperationalError("disk I/O error")
        return super().save_scheduled_handles(task_id, handles)


@pytest.mark.asyncio
async def test_create_schedules_each_future_offset(service, scheduler, task_store) -> None:
    deadline = NOW + 2 * DAY
    task = await service.create(TaskDraft(title="Tax", deadline_ts=deadline, reminder_offsets=[60, 1440]), now_ts=NOW)

    assert len(task.scheduled_handles) == 2
    assert scheduler.trigger_times(task.scheduled_handles) == {deadline - HOUR, deadline - DAY}
    # persisted, not just returned
    assert task_store.load(task.id).scheduled_handles == task.scheduled_handles


@pytest.mark.asyncio
async def test_create_uses_default_offsets(service, scheduler) -> None:
    task = await service.create(TaskDraft(title="Defaults", deadline_ts=NOW + 3 * DAY), now_ts=NOW)

    assert task.reminder_offsets == [1440]
    assert [p.offset_minutes for _, p in scheduler.schedule_calls] == [1440]


@pytest.mark.asyncio
async def test_create_with_explicit_empty_offsets_schedules_nothing(service, scheduler) -> None:
    task = await service.create(TaskDraft(title="Quiet", deadline_ts=NOW + DAY, reminder_offsets=[]), now_ts=NOW)

    assert task.reminder_offsets == []
    assert task.scheduled_handles == []
    assert scheduler.schedule_calls == []


@pytest.mark.asyncio
async def test_title_only_updates_keep_handles(service, scheduler) -> None:
    task = await service.create(
        TaskDraft(title="Draft", deadline_ts=NOW + 2 * DAY, reminder_offsets=[60, 1440]), now_ts=NOW
    )
    original = list(task.scheduled_handles)

    first = await service.update(task.id, TaskPatch(title="Draft v2"), now_ts=NOW + 10)
    second = await service.update(task.id, TaskPatch(description="notes"), now_ts=NOW + 20)

    assert first.scheduled_handles == original
    assert second.scheduled_handles == first.scheduled_handles
    assert scheduler.cancel_calls == []
    assert len(scheduler.schedule_calls) == 2


@pytest.mark.asyncio
async def test_deadline_change_replaces_all_handles(service, scheduler) -> None:
    task = await service.create(
        TaskDraft(title="Move me", deadline_ts=NOW + 2 * DAY, reminder_offsets=[60, 1440]), now_ts=NOW
    )
    original = list(task.scheduled_handles)

    new_deadline = NOW + 4 * DAY
    moved = await service.update(task.id, TaskPatch(deadline_ts=new_deadline), now_ts=NOW)

    assert sorted(scheduler.cancel_calls) == sorted(original)
    assert set(moved.scheduled_handles).isdisjoint(original)
    assert scheduler.trigger_times(moved.scheduled_handles) == {new_deadline - HOUR, new_deadline - DAY}
    assert {p.deadline_ts for _, p in scheduler.schedule_calls[2:]} == {new_deadline}


@pytest.mark.asyncio
async def test_completion_empties_handles(service, scheduler, task_store) -> None:
    task = await service.create(
        TaskDraft(title="Finish", deadline_ts=NOW + 2 * DAY, reminder_offsets=[60, 1440]), now_ts=NOW
    )
    done = await service.toggle_completion(task.id, now_ts=NOW)

    assert done.completed
    assert done.scheduled_handles == []
    assert task_store.load(task.id).scheduled_handles == []
    assert scheduler.live == {}


@pytest.mark.asyncio
async def test_reopen_recomputes_from_current_time(service, scheduler) -> None:
    deadline = NOW + 2 * HOUR
    task = await service.create(TaskDraft(title="Call", deadline_ts=deadline, reminder_offsets=[60]), now_ts=NOW)
    assert len(task.scheduled_handles) == 1

    done = await service.toggle_completion(task.id, now_ts=NOW + 60)
    assert done.scheduled_handles == []

    reopened = await service.toggle_completion(task.id, now_ts=NOW + 120)
    assert not reopened.completed
    assert len(reopened.scheduled_handles) == 1
    assert scheduler.trigger_times(reopened.scheduled_handles) == {NOW + HOUR}


@pytest.mark.asyncio
async def test_reopen_after_trigger_passed_schedules_nothing(service, scheduler) -> None:
    task = await service.create(
        TaskDraft(title="Late", deadline_ts=NOW + 2 * HOUR, reminder_offsets=[60]), now_ts=NOW
    )
    await service.toggle_completion(task.id, now_ts=NOW)

    reopened = await service.toggle_completion(task.id, now_ts=NOW + 90 * 60)
    assert reopened.scheduled_handles == []


@pytest.mark.asyncio
async def test_delete_cancels_then_removes(service, scheduler, task_store) -> None:
    task = await service.create(
        TaskDraft(title="Bye", deadline_ts=NOW + DAY, reminder_offsets=[10, 20, 30]), now_ts=NOW
    )
    assert len(task.scheduled_handles) == 3

    await service.delete(task.id)

    assert sorted(scheduler.cancel_calls) == sorted(task.scheduled_handles)
    assert scheduler.live == {}
    with pytest.raises(TaskNotFound):
        task_store.load(task.id)


@pytest.mark.asyncio
async def test_partial_scheduling_failure_still_creates_task(service, scheduler, task_store) -> None:
    scheduler.fail_offsets = {5}
    task = await service.create(TaskDraft(title="Flaky", deadline_ts=NOW + DAY, reminder_offsets=[5, 10]), now_ts=NOW)

    assert len(task.scheduled_handles) == 1
    (handle,) = task.scheduled_handles
    assert scheduler.live[handle].payload.offset_minutes == 10
    assert task_store.load(task.id).scheduled_handles == [handle]


@pytest.mark.asyncio
async def test_missing_task_surfaces_and_skips_reconciliation(service, scheduler) -> None:
    with pytest.raises(TaskNotFound):
        await service.update(404, TaskPatch(title="nope"), now_ts=NOW)
    with pytest.raises(TaskNotFound):
        await service.toggle_completion(404)
    with pytest.raises(TaskNotFound):
        await service.delete(404)

    assert scheduler.schedule_calls == []
    assert scheduler.cancel_calls == []


@pytest.mark.asyncio
async def test_failed_write_does_not_reconcile(tmp_path, scheduler) -> None:
    store = BrokenWritesStore(tmp_path / "tasks.sqlite3")
    svc = TaskService(store, ReminderReconciler(scheduler))
    task = await svc.create(TaskDraft(title="Locked", deadline_ts=NOW + DAY, reminder_offsets=[60]), now_ts=NOW)
    calls_before = len(scheduler.schedule_calls)

    with pytest.raises(sqlite3.OperationalError):
        await svc.update(task.id, TaskPatch(deadline_ts=NOW + 2 * DAY), now_ts=NOW)

    assert len(scheduler.schedule_calls) == calls_before
    assert scheduler.cancel_calls == []


@pytest.mark.asyncio
async def test_unpersistable_handles_are_rolled_back(tmp_path, scheduler) -> None:
    store = BrokenHandleStore(tmp_path / "tasks.sqlite3")
    svc = TaskService(store, ReminderReconciler(scheduler))

    task = await svc.create(TaskDraft(title="Orphan", deadline_ts=NOW + DAY, reminder_offsets=[60, 120]), now_ts=NOW)

    assert task.scheduled_handles == []
    assert scheduler.live == {}
    assert store.load(task.id).title == "Orphan"


@pytest.mark.asyncio
async def test_edit_after_failed_handle_write_rebuilds_reminders(tmp_path, scheduler) -> None:
    store = FlakyHandleStore(tmp_path / "tasks.sqlite3")
    svc = TaskService(store, ReminderReconciler(scheduler))
    task = await svc.create(TaskDraft(title="A", deadline_ts=NOW + DAY, reminder_offsets=[60]), now_ts=NOW)
    assert store.load(task.id).scheduled_handles == ["h1"]

    # deadline move: h1 is cancelled, h2 scheduled, but h2 cannot be recorded
    store.handle_failures = 1
    await svc.update(task.id, TaskPatch(deadline_ts=NOW + 3 * DAY), now_ts=NOW)
    assert scheduler.live == {}
    assert svc.needs_resync(task.id)

    # a title-only edit would normally be a no-op for reminders
    await svc.update(task.id, TaskPatch(title="B"), now_ts=NOW)

    stored = store.load(task.id).scheduled_handles
    assert stored == list(scheduler.live)
    assert scheduler.trigger_times(stored) == {NOW + 3 * DAY - HOUR}
    assert not svc.needs_resync(task.id)


@pytest.mark.asyncio
async def test_toggle_after_failed_handle_write_clears_stale_handles(tmp_path, scheduler) -> None:
    store = FlakyHandleStore(tmp_path / "tasks.sqlite3")
    svc = TaskService(store, ReminderReconciler(scheduler))
    task = await svc.create(TaskDraft(title="A", deadline_ts=NOW + DAY, reminder_offsets=[60]), now_ts=NOW)

    store.handle_failures = 1
    await svc.update(task.id, TaskPatch(reminder_offsets=[30]), now_ts=NOW)

    done = await svc.toggle_completion(task.id, now_ts=NOW)
    assert done.completed
    assert store.load(task.id).scheduled_handles == []
    assert scheduler.live == {}
    assert not svc.needs_resync(task.id)


@pytest.mark.asyncio
async def test_create_leaves_callers_draft_untouched(service) -> None:
    draft = TaskDraft(title="X", deadline_ts=NOW + 2 * DAY)
    task = await service.create(draft, now_ts=NOW)

    assert draft.reminder_offsets is None
    assert task.reminder_offsets == [1440]


@pytest.mark.asyncio
async def test_resync_all_rebuilds_every_open_task(service, scheduler, task_store) -> None:
    a = await service.create(TaskDraft(title="A", deadline_ts=NOW + DAY, reminder_offsets=[60]), now_ts=NOW)
    b = await service.create(TaskDraft(title="B", deadline_ts=NOW + DAY, reminder_offsets=[60]), now_ts=NOW)
    await service.toggle_completion(b.id, now_ts=NOW)

    # backend lost everything
    scheduler.live.clear()

    assert await service.resync_all(now_ts=NOW) == 2
    assert len(task_store.load(a.id).scheduled_handles) == 1
    assert task_store.load(b.id).scheduled_handles == []
    assert len(scheduler.live) == 1


@pytest.mark.asyncio
async def test_clear_all_cancels_before_deleting(service, scheduler, task_store) -> None:
    await service.create(TaskDraft(title="A", deadline_ts=NOW + DAY, reminder_offsets=[60, 120]), now_ts=NOW)
    await service.create(TaskDraft(title="B", deadline_ts=NOW + DAY, reminder_offsets=[30]), now_ts=NOW)

    assert await service.clear_all() == 2
    assert task_store.count_tasks() == 0
    assert scheduler.live == {}
    assert len(scheduler.cancel_calls) == 3
