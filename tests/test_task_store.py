"""Tests for src.core.task_store — the canonical task collection."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.task_store import (
    TASKS_KEY,
    TaskNotFoundError,
    TaskStore,
    TaskValidationError,
    derive_completion,
    next_display_order,
    validate_task,
)
from src.data.models import PRIORITY_CRITICAL, PRIORITY_IMPORTANT, PRIORITY_SOMEDAY, Assignment, Task
from src.ports.storage_port import StorageError


class TestValidateTask:
    def test_empty_title(self):
        with pytest.raises(TaskValidationError):
            validate_task(Task(id="t", title="   "))

    def test_critical_needs_deadline(self):
        with pytest.raises(TaskValidationError, match="deadline"):
            validate_task(Task(id="t", title="x", priority=PRIORITY_CRITICAL))

    def test_critical_bad_deadline(self):
        with pytest.raises(TaskValidationError, match="YYYY-MM-DD"):
            validate_task(Task(id="t", title="x", priority=PRIORITY_CRITICAL, deadline="next week"))

    def test_non_critical_with_deadline(self):
        with pytest.raises(TaskValidationError):
            validate_task(Task(id="t", title="x", priority=PRIORITY_IMPORTANT, deadline="2026-01-01"))

    def test_unknown_enums(self):
        with pytest.raises(TaskValidationError):
            validate_task(Task(id="t", title="x", priority="URGENT"))
        with pytest.raises(TaskValidationError):
            validate_task(Task(id="t", title="x", type="garden"))
        with pytest.raises(TaskValidationError):
            validate_task(Task(id="t", title="x", energy="medium"))

    def test_valid_critical(self):
        validate_task(Task(id="t", title="x", priority=PRIORITY_CRITICAL, deadline="2026-03-01"))


class TestDeriveCompletion:
    def test_empty_schedule_leaves_flag(self):
        task = Task(id="t", title="x", completed=True)
        derive_completion(task)
        assert task.completed is True

    def test_all_assignments_complete(self):
        task = Task(id="t", title="x", schedule=[Assignment("monday", "admin", True)])
        derive_completion(task)
        assert task.completed is True

    def test_one_open_assignment(self):
        task = Task(id="t", title="x", completed=True, schedule=[
            Assignment("monday", "admin", True), Assignment("tuesday", "admin", False),
        ])
        derive_completion(task)
        assert task.completed is False


class TestNextDisplayOrder:
    def test_empty_collection(self):
        assert next_display_order([], PRIORITY_SOMEDAY) == 0

    def test_after_active_lane_max(self):
        tasks = [
            Task(id="a", title="a", priority=PRIORITY_SOMEDAY, display_order=2),
            Task(id="b", title="b", priority=PRIORITY_SOMEDAY, display_order=7, completed=True),
            Task(id="c", title="c", priority=PRIORITY_IMPORTANT, display_order=9),
        ]
        assert next_display_order(tasks, PRIORITY_SOMEDAY) == 3

    def test_falls_back_to_global_max(self):
        tasks = [Task(id="c", title="c", priority=PRIORITY_IMPORTANT, display_order=9)]
        assert next_display_order(tasks, PRIORITY_SOMEDAY) == 10


class TestTaskStoreCreate:
    @pytest.mark.asyncio
    async def test_create_assigns_id_and_order(self, task_store):
        first = await task_store.create("First")
        second = await task_store.create("Second")
        assert first.id != second.id
        assert (first.display_order, second.display_order) == (0, 1)
        assert [t.id for t in await task_store.get_all()] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_create_trims_and_defaults(self, task_store):
        task = await task_store.create("  Buy milk  ", url=" https://shop ")
        assert task.title == "Buy milk"
        assert task.url == "https://shop"
        assert task.energy == "low"
        assert task.schedule == []

    @pytest.mark.asyncio
    async def test_create_drops_deadline_when_not_critical(self, task_store):
        task = await task_store.create("Later", priority=PRIORITY_SOMEDAY, deadline="2026-01-01")
        assert task.deadline is None

    @pytest.mark.asyncio
    async def test_create_critical_without_deadline_rejected(self, task_store):
        with pytest.raises(TaskValidationError):
            await task_store.create("Urgent", priority=PRIORITY_CRITICAL)
        assert await task_store.get_all() == []

    @pytest.mark.asyncio
    async def test_concurrent_creates_all_persist(self, task_store):
        await asyncio.gather(*(task_store.create(f"Task {i}") for i in range(10)))
        tasks = await task_store.get_all()
        assert len(tasks) == 10
        assert sorted(t.display_order for t in tasks) == list(range(10))


class TestTaskStoreUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_replaces_task(self, task_store):
        task = await task_store.create("Draft")
        task.title = "Final"
        assert await task_store.update(task) is True
        assert (await task_store.get_by_id(task.id)).title == "Final"

    @pytest.mark.asyncio
    async def test_update_unknown_returns_false(self, task_store):
        assert await task_store.update(Task(id="ghost", title="x")) is False

    @pytest.mark.asyncio
    async def test_update_derives_completion(self, task_store):
        task = await task_store.create("Scheduled")
        task.schedule = [Assignment("monday", "admin", True)]
        await task_store.update(task)
        assert (await task_store.get_by_id(task.id)).completed is True

    @pytest.mark.asyncio
    async def test_update_many_unknown_id(self, task_store):
        task = await task_store.create("Known")
        with pytest.raises(TaskNotFoundError):
            await task_store.update_many([task, Task(id="ghost", title="x")])

    @pytest.mark.asyncio
    async def test_delete(self, task_store):
        task = await task_store.create("Gone soon")
        assert await task_store.delete(task.id) is True
        assert await task_store.get_by_id(task.id) is None

    @pytest.mark.asyncio
    async def test_delete_unknown_writes_nothing(self):
        storage = MagicMock()
        storage.get = AsyncMock(return_value=[])
        storage.set = AsyncMock()
        store = TaskStore(storage)
        assert await store.delete("ghost") is False
        storage.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_replace_all(self, task_store):
        await task_store.create("Old")
        await task_store.replace_all([Task(id="n1", title="New")])
        assert [t.id for t in await task_store.get_all()] == ["n1"]


class TestTaskStoreLoad:
    @pytest.mark.asyncio
    async def test_old_records_are_backfilled_and_saved(self, kv_store, task_store):
        await kv_store.set(TASKS_KEY, [{"id": "a", "title": "Old"}, {"id": "b", "title": "Older"}])
        tasks = await task_store.get_all()
        assert [t.display_order for t in tasks] == [0, 1]
        stored = await kv_store.get(TASKS_KEY)
        assert stored[1]["displayOrder"] == 1
        assert stored[0]["schedule"] == []
        assert stored[0]["energy"] == "low"

    @pytest.mark.asyncio
    async def test_blank_display_order_does_not_break_loading(self, kv_store, task_store):
        await kv_store.set(TASKS_KEY, [
            {"id": "a", "title": "A", "displayOrder": 3, "schedule": [], "energy": "low"},
            {"id": "b", "title": "B", "displayOrder": "", "schedule": [], "energy": "low"},
        ])
        tasks = await task_store.get_all()
        assert [t.display_order for t in tasks] == [3, 1]
        assert (await kv_store.get(TASKS_KEY))[1]["displayOrder"] == 1

    @pytest.mark.asyncio
    async def test_storage_failure_propagates_on_write(self):
        storage = MagicMock()
        storage.get = AsyncMock(return_value=[])
        storage.set = AsyncMock(side_effect=StorageError("quota exceeded"))
        store = TaskStore(storage)
        with pytest.raises(StorageError):
            await store.create("Won't fit")


class TestTaskStoreModify:
    @pytest.mark.asyncio
    async def test_modify_saves_when_changed(self, task_store):
        task = await task_store.create("Rename me")

        def mutate(t, tasks):
            t.title = "Renamed"
            return "done", True

        updated, result = await task_store.modify(task.id, mutate)
        assert result == "done"
        assert (await task_store.get_by_id(task.id)).title == "Renamed"

    @pytest.mark.asyncio
    async def test_modify_skips_save_when_unchanged(self, task_store):
        task = await task_store.create("Keep")

        def mutate(t, tasks):
            t.title = "Not saved"
            return None, False

        await task_store.modify(task.id, mutate)
        assert (await task_store.get_by_id(task.id)).title == "Keep"

    @pytest.mark.asyncio
    async def test_modify_unknown(self, task_store):
        with pytest.raises(TaskNotFoundError):
            await task_store.modify("ghost", lambda t, tasks: (None, True))
