"""
TaskGrid Assistant — Task Store.

The single source of truth for tasks. The whole collection lives under one
key of the key-value store: every operation reads it entirely, mutates it in
memory and writes it back entirely. Writes are serialised through one lock
so two mutations issued from the same event loop cannot overwrite each other.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import TYPE_CHECKING, Callable, TypeVar

from src.data.migration import migrate_records
from src.data.models import (
    ENERGY_LEVELS,
    PRIORITIES,
    PRIORITY_CRITICAL,
    PRIORITY_SOMEDAY,
    TASK_TYPES,
    Task,
    new_task_id,
)
from src.ports.storage_port import StorageError

if TYPE_CHECKING:
    from src.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"

T = TypeVar("T")


class TaskValidationError(ValueError):
    """Raised when a task would violate a write-time rule (title, deadline, enums)."""


class TaskNotFoundError(LookupError):
    """Raised when a task id is absent from the collection."""


def validate_task(task: Task) -> None:
    """Check the write-time rules of a task. Raises TaskValidationError."""
    if not task.title or not task.title.strip():
        raise TaskValidationError("Task title cannot be empty.")
    if task.priority not in PRIORITIES:
        raise TaskValidationError(f"Unknown priority: {task.priority!r}")
    if task.type not in TASK_TYPES:
        raise TaskValidationError(f"Unknown task type: {task.type!r}")
    if task.energy not in ENERGY_LEVELS:
        raise TaskValidationError(f"Unknown energy level: {task.energy!r}")
    if task.priority == PRIORITY_CRITICAL:
        if not task.deadline:
            raise TaskValidationError("Critical tasks need a deadline.")
        try:
            date.fromisoformat(task.deadline)
        except ValueError as exc:
            raise TaskValidationError(f"Invalid deadline {task.deadline!r}, expected YYYY-MM-DD") from exc
    elif task.deadline:
        raise TaskValidationError("Only critical tasks can have a deadline.")


def derive_completion(task: Task) -> None:
    """A scheduled task is complete exactly when all its assignments are."""
    if task.schedule:
        task.completed = all(item.completed for item in task.schedule)


def next_display_order(tasks: list[Task], priority: str) -> int:
    """Rank for a new task: one past the highest active task in its lane.

    Falls back to the whole collection when the lane has no active task.
    """
    lane = [t.display_order for t in tasks if t.priority == priority and not t.completed]
    if lane:
        return max(lane) + 1
    orders = [t.display_order for t in tasks]
    return max(orders) + 1 if orders else 0


class TaskStore:
    """Async CRUD over the persisted task collection."""

    def __init__(self, storage: KeyValuePort, default_energy: str = "low") -> None:
        self._storage = storage
        self._default_energy = default_energy
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Raw load/save (callers hold the lock)
    # ------------------------------------------------------------------

    async def _load(self) -> list[Task]:
        records = await self._storage.get(TASKS_KEY, [])
        tasks, changed = migrate_records(records or [], self._default_energy)
        if changed:
            try:
                await self._save(tasks)
            except StorageError as exc:
                # The migrated collection is still returned; it will be
                # written by the next successful save.
                logger.error("Failed to save tasks after backfilling: %s", exc)
        return tasks

    async def _save(self, tasks: list[Task]) -> None:
        await self._storage.set(TASKS_KEY, [t.to_record() for t in tasks])
        logger.debug("Saved %d task(s)", len(tasks))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_all(self) -> list[Task]:
        """Return every task, migrating old records on the way."""
        async with self._lock:
            return await self._load()

    async def get_by_id(self, task_id: str) -> Task | None:
        async with self._lock:
            tasks = await self._load()
        return next((t for t in tasks if t.id == task_id), None)

    async def create(
        self,
        title: str,
        url: str = "",
        priority: str = PRIORITY_SOMEDAY,
        deadline: str | None = None,
        type: str = "home",
        energy: str | None = None,
    ) -> Task:
        """Insert a new task at the end of its priority lane.

        Raises TaskValidationError, StorageError.
        """
        task = Task(
            id=new_task_id(),
            title=title.strip(),
            url=(url or "").strip(),
            priority=priority,
            completed=False,
            deadline=(deadline or None) if priority == PRIORITY_CRITICAL else None,
            type=type,
            schedule=[],
            energy=energy or self._default_energy,
        )
        validate_task(task)

        async with self._lock:
            tasks = await self._load()
            task.display_order = next_display_order(tasks, priority)
            tasks.append(task)
            await self._save(tasks)

        logger.info("Task created: %s '%s' [%s #%d]", task.id, task.title, task.priority, task.display_order)
        return task

    async def update(self, task: Task) -> bool:
        """Replace the stored task with the same id. No field merging.

        Returns False when the id is unknown. Raises TaskValidationError, StorageError.
        """
        validate_task(task)
        derive_completion(task)

        async with self._lock:
            tasks = await self._load()
            for index, existing in enumerate(tasks):
                if existing.id == task.id:
                    tasks[index] = task
                    break
            else:
                logger.warning("Task %s not found for update", task.id)
                return False
            await self._save(tasks)

        logger.info("Task updated: %s '%s'", task.id, task.title)
        return True

    async def update_many(self, updated: list[Task]) -> None:
        """Replace several tasks in one write. Raises TaskNotFoundError if any id is unknown."""
        for task in updated:
            validate_task(task)
            derive_completion(task)

        async with self._lock:
            tasks = await self._load()
            positions = {t.id: i for i, t in enumerate(tasks)}
            for task in updated:
                if task.id not in positions:
                    raise TaskNotFoundError(task.id)
                tasks[positions[task.id]] = task
            await self._save(tasks)

        logger.info("Updated %d task(s) in one write", len(updated))

    async def delete(self, task_id: str) -> bool:
        """Remove a task. Returns False (and writes nothing) when it doesn't exist."""
        async with self._lock:
            tasks = await self._load()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                logger.warning("Task with ID %s not found for deletion.", task_id)
                return False
            await self._save(remaining)

        logger.info("Task %s deleted", task_id)
        return True

    async def replace_all(self, tasks: list[Task]) -> None:
        """Overwrite the entire collection (used by import)."""
        async with self._lock:
            await self._save(tasks)
        logger.info("Task collection replaced (%d task(s))", len(tasks))

    async def modify(
        self,
        task_id: str,
        mutator: Callable[[Task, list[Task]], tuple[T, bool]],
    ) -> tuple[Task, T]:
        """Run `mutator(task, all_tasks)` and save when it reports a change.

        The check and the write happen under the store lock, so a capacity
        check made by the mutator still holds when the collection is saved.
        Raises TaskNotFoundError, TaskValidationError, StorageError.
        """
        async with self._lock:
            tasks = await self._load()
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                raise TaskNotFoundError(task_id)
            result, changed = mutator(task, tasks)
            if changed:
                validate_task(task)
                derive_completion(task)
                await self._save(tasks)
                logger.info("Task %s modified", task_id)
        return task, result
