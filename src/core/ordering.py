"""
TaskGrid Assistant — Lane Ordering.

Every priority lane is ranked by `display_order`. Values only need to be
distinct inside a lane; gaps are fine and lanes are independent.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from src.core.task_store import TaskNotFoundError, TaskValidationError
from src.data.models import PRIORITIES, PRIORITY_CRITICAL, Task

if TYPE_CHECKING:
    from src.core.task_store import TaskStore

logger = logging.getLogger(__name__)


class SwapResult(Enum):
    OK = "ok"
    AT_BOUNDARY = "at_boundary"
    NOT_FOUND = "not_found"


def sorted_lane(tasks: list[Task], priority: str) -> list[Task]:
    """Tasks of one lane by rank; ties keep collection order."""
    return sorted((t for t in tasks if t.priority == priority), key=lambda t: t.display_order)


def _renumber_if_duplicated(lane: list[Task]) -> list[Task]:
    """Give a lane with repeated ranks dense ranks 0..n-1. Returns the tasks that changed."""
    if len({t.display_order for t in lane}) == len(lane):
        return []
    changed = []
    for index, task in enumerate(lane):
        if task.display_order != index:
            task.display_order = index
            changed.append(task)
    return changed


class OrderingService:
    """Move-up/down and drag-reorder within priority lanes."""

    def __init__(self, store: TaskStore) -> None:
        self._store = store

    async def swap_with_neighbor(self, task_id: str, direction: str) -> tuple[SwapResult, list[Task]]:
        """Swap a task's rank with the one above ("up") or below ("down").

        Returns (result, tasks written). Nothing is written at a lane edge.
        """
        if direction not in ("up", "down"):
            raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")

        tasks = await self._store.get_all()
        task = next((t for t in tasks if t.id == task_id), None)
        if task is None:
            return SwapResult.NOT_FOUND, []

        lane = sorted_lane(tasks, task.priority)
        index = lane.index(task)
        other_index = index - 1 if direction == "up" else index + 1
        if other_index < 0 or other_index >= len(lane):
            return SwapResult.AT_BOUNDARY, []

        changed = {t.id: t for t in _renumber_if_duplicated(lane)}
        other = lane[other_index]
        task.display_order, other.display_order = other.display_order, task.display_order
        changed[task.id] = task
        changed[other.id] = other

        await self._store.update_many(list(changed.values()))
        logger.info("Task %s moved %s in lane %s (swapped with %s)", task.id, direction, task.priority, other.id)
        return SwapResult.OK, list(changed.values())

    async def reorder_by_position(self, lane: str, ordered_ids: list[str]) -> list[Task]:
        """Apply an explicit ordering for one lane (the result of a drag-and-drop).

        Tasks dropped in from another lane take the lane's priority in the
        same write. Lane members missing from `ordered_ids` keep their
        relative order after the listed ones.

        Raises TaskNotFoundError, TaskValidationError.
        """
        if lane not in PRIORITIES:
            raise TaskValidationError(f"Unknown priority: {lane!r}")

        tasks = await self._store.get_all()
        by_id = {t.id: t for t in tasks}
        missing = [task_id for task_id in ordered_ids if task_id not in by_id]
        if missing:
            raise TaskNotFoundError(", ".join(missing))

        listed = [by_id[task_id] for task_id in dict.fromkeys(ordered_ids)]
        listed_ids = {t.id for t in listed}
        rest = [t for t in sorted_lane(tasks, lane) if t.id not in listed_ids]

        for task in listed:
            if task.priority != lane:
                if lane == PRIORITY_CRITICAL and not task.deadline:
                    raise TaskValidationError(f"'{task.title}' needs a deadline to become critical.")
                if lane != PRIORITY_CRITICAL:
                    task.deadline = None
                logger.info("Task %s moved from lane %s to %s", task.id, task.priority, lane)
                task.priority = lane

        final = listed + rest
        for index, task in enumerate(final):
            task.display_order = index

        await self._store.update_many(final)
        logger.info("Lane %s reordered (%d task(s))", lane, len(final))
        return final
