"""
TaskGrid Assistant — Data Models.

Tasks live in a single persisted collection (see src.core.task_store).
A task may be placed into any number of weekly slots; each placement is an
Assignment with its own completion flag.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

PRIORITY_CRITICAL = "CRITICAL"
PRIORITY_IMPORTANT = "IMPORTANT"
PRIORITY_SOMEDAY = "SOMEDAY"
PRIORITIES = (PRIORITY_CRITICAL, PRIORITY_IMPORTANT, PRIORITY_SOMEDAY)

TASK_TYPES = ("home", "work")
ENERGY_LEVELS = ("low", "high")

DAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]

CAPACITY_NONE = "none"
CAPACITY_SINGLE = "single"
CAPACITY_MULTIPLE = "multiple"
CAPACITIES = (CAPACITY_NONE, CAPACITY_SINGLE, CAPACITY_MULTIPLE)


def new_task_id() -> str:
    """Return a fresh opaque id, e.g. 'task_1760850000000_3f9a1c2be'."""
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class Assignment:
    """A placement of a task into one (day, block) slot of the weekly grid."""

    day: str                # one of DAYS
    block_id: str           # TimeBlock.id
    completed: bool = False

    @property
    def slot(self) -> tuple[str, str]:
        return (self.day, self.block_id)

    def to_record(self) -> dict:
        return {"day": self.day, "blockId": self.block_id, "completed": self.completed}

    @classmethod
    def from_record(cls, record: dict) -> Assignment:
        return cls(
            day=record.get("day", ""),
            block_id=record.get("blockId", ""),
            completed=bool(record.get("completed", False)),
        )


@dataclass
class Task:
    """The unit of work.

    `display_order` ranks the task inside its priority lane only.
    `deadline` is an ISO date (YYYY-MM-DD) and is set only for CRITICAL tasks.
    """

    id: str
    title: str
    url: str = ""
    priority: str = PRIORITY_SOMEDAY
    completed: bool = False
    deadline: str | None = None
    type: str = "home"
    display_order: int = 0
    schedule: list[Assignment] = field(default_factory=list)
    energy: str = "low"

    def find_assignment(self, day: str, block_id: str) -> Assignment | None:
        for item in self.schedule:
            if item.day == day and item.block_id == block_id:
                return item
        return None

    def to_record(self) -> dict:
        """Serialize to the persisted (camelCase) record layout."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "priority": self.priority,
            "completed": self.completed,
            "deadline": self.deadline,
            "type": self.type,
            "displayOrder": self.display_order,
            "schedule": [item.to_record() for item in self.schedule],
            "energy": self.energy,
        }

    @classmethod
    def from_record(cls, record: dict) -> Task:
        """Build a Task from a fully migrated record."""
        return cls(
            id=record["id"],
            title=record.get("title", ""),
            url=record.get("url") or "",
            priority=record.get("priority", PRIORITY_SOMEDAY),
            completed=bool(record.get("completed", False)),
            deadline=record.get("deadline") or None,
            type=record.get("type", "home"),
            display_order=int(record.get("displayOrder", 0)),
            schedule=[Assignment.from_record(s) for s in record.get("schedule", [])],
            energy=record.get("energy", "low"),
        )


@dataclass(frozen=True)
class TimeBlock:
    """A row of the weekly grid. Read-only reference data."""

    id: str
    label: str
    capacity: str = CAPACITY_MULTIPLE   # "none" | "single" | "multiple"
