"""
TaskGrid Assistant — Time Block Catalog.

The rows of the weekly grid. Each block declares how many tasks may sit in
one of its (day, block) cells: none, a single one, or any number.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from src.data.models import CAPACITIES, CAPACITY_MULTIPLE, CAPACITY_NONE, CAPACITY_SINGLE, TimeBlock

logger = logging.getLogger(__name__)

DEFAULT_TIME_BLOCKS: list[TimeBlock] = [
    TimeBlock("morning-routine", "Morning routine (07:00-08:00)", CAPACITY_NONE),
    TimeBlock("deep-work-1", "Deep work I (08:00-10:00)", CAPACITY_SINGLE),
    TimeBlock("deep-work-2", "Deep work II (10:15-12:00)", CAPACITY_SINGLE),
    TimeBlock("lunch", "Lunch (12:00-13:00)", CAPACITY_NONE),
    TimeBlock("admin", "Admin & email (13:00-14:00)", CAPACITY_MULTIPLE),
    TimeBlock("afternoon", "Afternoon (14:00-17:00)", CAPACITY_MULTIPLE),
    TimeBlock("evening", "Evening (18:00-21:00)", CAPACITY_MULTIPLE),
]


def load_time_blocks(path: str | None = None) -> list[TimeBlock]:
    """Return the block catalog, read from a JSON file when one is given.

    File format: [{"id": "...", "label": "...", "capacity": "single"}, ...]
    """
    if not path:
        return list(DEFAULT_TIME_BLOCKS)

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    blocks: list[TimeBlock] = []
    for item in raw:
        capacity = str(item.get("capacity", CAPACITY_MULTIPLE)).lower()
        if capacity not in CAPACITIES:
            raise ValueError(f"Unknown capacity {capacity!r} for block {item.get('id')!r}")
        blocks.append(TimeBlock(id=item["id"], label=item.get("label", item["id"]), capacity=capacity))

    logger.info("Loaded %d time block(s) from %s", len(blocks), path)
    return blocks
