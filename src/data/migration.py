"""
TaskGrid Assistant — Record Migration.

Older collections were written before display order, schedules and energy
existed. Records are upgraded once, at load time, so the rest of the code
only ever sees complete Task objects.
"""

from __future__ import annotations

import logging

from src.data.models import Task, new_task_id

logger = logging.getLogger(__name__)


def _as_order(value) -> int | None:
    """An integer rank, or None when the stored value isn't one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def migrate_records(
    records: list[dict], default_energy: str = "low",
) -> tuple[list[Task], bool]:
    """Backfill missing fields and convert raw records into Tasks.

    - missing or non-integer `displayOrder` → the record's position in the collection
    - missing `schedule`     → []
    - missing `energy`       → default_energy

    Returns (tasks, changed). `changed` tells the caller the collection
    must be written back.
    """
    changed = False
    tasks: list[Task] = []

    for index, raw in enumerate(records):
        record = dict(raw)
        if not record.get("id"):
            record["id"] = new_task_id()
            logger.warning("Record at position %d had no id, assigned %s", index, record["id"])
            changed = True
        order = _as_order(record.get("displayOrder"))
        if order is None:
            if record.get("displayOrder") is not None:
                logger.warning(
                    "Record %s had invalid displayOrder %r, using %d",
                    record["id"], record["displayOrder"], index,
                )
            order = index
        if order != record.get("displayOrder"):
            record["displayOrder"] = order
            changed = True
        if record.get("schedule") is None:
            record["schedule"] = []
            changed = True
        if record.get("energy") is None:
            record["energy"] = default_energy
            changed = True
        tasks.append(Task.from_record(record))

    if changed:
        logger.info("Migrated task collection (%d record(s))", len(tasks))
    return tasks, changed
