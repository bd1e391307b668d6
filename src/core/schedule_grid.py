"""
TaskGrid Assistant — Schedule Grid.

Places tasks into (day, block) slots of the weekly grid and enforces the
per-block capacity rules. Works on Task objects only; persisting the result
is the caller's job, which is why every method reports whether a save is
needed.
"""

from __future__ import annotations

import logging
from enum import Enum

from src.core.task_store import derive_completion
from src.data.models import CAPACITY_NONE, CAPACITY_SINGLE, DAYS, Assignment, Task, TimeBlock

logger = logging.getLogger(__name__)


class AssignResult(Enum):
    OK = "ok"
    CAPACITY_ZERO = "capacity_zero"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    ALREADY_ASSIGNED = "already_assigned"
    UNKNOWN_BLOCK = "unknown_block"
    INVALID_DAY = "invalid_day"
    NOT_ASSIGNED = "not_assigned"

    @property
    def changed(self) -> bool:
        """True when the task was mutated and must be saved."""
        return self is AssignResult.OK


REJECTION_MESSAGES = {
    AssignResult.CAPACITY_ZERO: "No tasks can be scheduled in this block.",
    AssignResult.CAPACITY_EXCEEDED: "This slot already holds a task.",
    AssignResult.ALREADY_ASSIGNED: "The task is already scheduled in this slot.",
    AssignResult.UNKNOWN_BLOCK: "Unknown time block.",
    AssignResult.INVALID_DAY: "Unknown day.",
    AssignResult.NOT_ASSIGNED: "The task is not scheduled in this slot.",
}


# ---------------------------------------------------------------------------
# Completion cascade
# ---------------------------------------------------------------------------


def set_task_completed(task: Task, completed: bool) -> None:
    """Complete (or reopen) a task together with all of its assignments."""
    task.completed = completed
    for item in task.schedule:
        item.completed = completed


def set_assignment_completed(task: Task, day: str, block_id: str, completed: bool) -> bool:
    """Complete one assignment; the task follows its assignments.

    Returns False when the task has no assignment in that slot.
    """
    item = task.find_assignment(day, block_id)
    if item is None:
        return False
    item.completed = completed
    derive_completion(task)
    return True


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


class ScheduleGrid:
    """Validates and applies slot assignments against a time block catalog."""

    def __init__(self, time_blocks: list[TimeBlock]) -> None:
        self._blocks = {b.id: b for b in time_blocks}
        self._order = [b.id for b in time_blocks]

    @property
    def blocks(self) -> list[TimeBlock]:
        return [self._blocks[block_id] for block_id in self._order]

    def get_block(self, block_id: str) -> TimeBlock | None:
        return self._blocks.get(block_id)

    def occupants(self, tasks: list[Task], day: str, block_id: str) -> list[Task]:
        """Tasks holding an assignment in the given slot."""
        return [t for t in tasks if t.find_assignment(day, block_id) is not None]

    def check_slot(self, task: Task, day: str, block_id: str, tasks: list[Task]) -> AssignResult:
        """Would placing `task` into (day, block_id) be accepted?"""
        if day not in DAYS:
            return AssignResult.INVALID_DAY
        block = self._blocks.get(block_id)
        if block is None:
            return AssignResult.UNKNOWN_BLOCK
        if block.capacity == CAPACITY_NONE:
            return AssignResult.CAPACITY_ZERO
        if task.find_assignment(day, block_id) is not None:
            return AssignResult.ALREADY_ASSIGNED
        if block.capacity == CAPACITY_SINGLE:
            others = [t for t in self.occupants(tasks, day, block_id) if t.id != task.id]
            if others:
                return AssignResult.CAPACITY_EXCEEDED
        return AssignResult.OK

    def assign(self, task: Task, day: str, block_id: str, tasks: list[Task]) -> AssignResult:
        """Append a new, incomplete assignment when the slot accepts the task."""
        result = self.check_slot(task, day, block_id, tasks)
        if result is not AssignResult.OK:
            logger.info("Assign %s → %s/%s rejected: %s", task.id, day, block_id, result.value)
            return result

        task.schedule.append(Assignment(day=day, block_id=block_id, completed=False))
        derive_completion(task)
        logger.info("Task %s assigned to %s/%s", task.id, day, block_id)
        return result

    def unassign(self, task: Task, day: str, block_id: str) -> AssignResult:
        """Remove an assignment. An emptied schedule leaves `completed` as it was."""
        item = task.find_assignment(day, block_id)
        if item is None:
            return AssignResult.NOT_ASSIGNED

        task.schedule.remove(item)
        derive_completion(task)
        logger.info("Task %s unassigned from %s/%s", task.id, day, block_id)
        return AssignResult.OK

    def move(
        self,
        task: Task,
        from_day: str | None,
        from_block_id: str | None,
        to_day: str,
        to_block_id: str,
        tasks: list[Task],
    ) -> AssignResult:
        """Move an assignment to another slot in one step.

        The destination is checked before the source is vacated, so a
        rejected move leaves the task untouched. A missing source turns the
        move into a plain assign.
        """
        if from_day == to_day and from_block_id == to_block_id:
            return AssignResult.OK

        result = self.check_slot(task, to_day, to_block_id, tasks)
        if result is not AssignResult.OK:
            logger.info(
                "Move %s %s/%s → %s/%s rejected: %s",
                task.id, from_day, from_block_id, to_day, to_block_id, result.value,
            )
            return result

        source = None
        if from_day is not None and from_block_id is not None:
            source = task.find_assignment(from_day, from_block_id)
        if source is not None:
            task.schedule.remove(source)
        task.schedule.append(Assignment(day=to_day, block_id=to_block_id, completed=False))
        derive_completion(task)
        logger.info("Task %s moved %s/%s → %s/%s", task.id, from_day, from_block_id, to_day, to_block_id)
        return AssignResult.OK

    def replace_schedule(
        self, task: Task, slots: list[tuple[str, str]], tasks: list[Task],
    ) -> AssignResult:
        """Set the full list of slots for a task (the "edit schedule" form).

        Assignments that survive keep their completion flag. The first
        rejected slot aborts the edit and leaves the task unchanged.
        """
        previous = {item.slot: item.completed for item in task.schedule}
        candidate = Task(id=task.id, title=task.title, schedule=[])

        for day, block_id in slots:
            result = self.check_slot(candidate, day, block_id, tasks)
            if result is AssignResult.ALREADY_ASSIGNED:
                continue
            if result is not AssignResult.OK:
                logger.info("Schedule edit for %s rejected at %s/%s: %s", task.id, day, block_id, result.value)
                return result
            candidate.schedule.append(
                Assignment(day=day, block_id=block_id, completed=previous.get((day, block_id), False))
            )

        task.schedule = candidate.schedule
        derive_completion(task)
        logger.info("Task %s schedule replaced (%d slot(s))", task.id, len(task.schedule))
        return AssignResult.OK
