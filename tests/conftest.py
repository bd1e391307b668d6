"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures: a temp key-value store, a task store, the
default grid and an in-memory spreadsheet.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("SPREADSHEET_ID", "")

import pytest

from src.ports.sheets_port import SheetsError


class InMemorySheets:
    """SheetsPort double keeping rows in plain lists.

    `fail_on` maps a method name to the sheet it should fail for, to
    simulate a remote error in one half of a two-step operation.
    """

    def __init__(self, title="Tasks"):
        self.title = title
        self.sheets: dict[str, list[list]] = {}
        self.sheet_ids: dict[str, int] = {}
        self.fail_on: dict[str, str] = {}
        self.calls: list[tuple] = []

    def _maybe_fail(self, method, sheet):
        if self.fail_on.get(method) == sheet:
            raise SheetsError(f"{method} failed for {sheet}")

    async def get_spreadsheet_title(self):
        return self.title

    async def ensure_sheets_exist(self, layout):
        for title, header in layout.items():
            if title not in self.sheets:
                self.sheets[title] = [list(header)]
                self.sheet_ids[title] = len(self.sheet_ids) + 100
        return {title: self.sheet_ids[title] for title in layout}

    async def get_all_rows(self, sheet):
        self.calls.append(("get_all_rows", sheet))
        self._maybe_fail("get_all_rows", sheet)
        return [list(r) for r in self.sheets.get(sheet, [])]

    async def append_row(self, sheet, values):
        self.calls.append(("append_row", sheet))
        self._maybe_fail("append_row", sheet)
        self.sheets.setdefault(sheet, []).append(list(values))

    async def overwrite_row(self, sheet, row_index, values):
        self.calls.append(("overwrite_row", sheet, row_index))
        self._maybe_fail("overwrite_row", sheet)
        self.sheets[sheet][row_index - 1] = list(values)

    async def delete_row(self, sheet, row_index):
        self.calls.append(("delete_row", sheet, row_index))
        self._maybe_fail("delete_row", sheet)
        del self.sheets[sheet][row_index - 1]

    async def clear_and_keep_header(self, sheet, header):
        self.calls.append(("clear_and_keep_header", sheet))
        self._maybe_fail("clear_and_keep_header", sheet)
        self.sheets[sheet] = [list(header)]

    async def write_rows(self, sheet, start_row, rows):
        self.calls.append(("write_rows", sheet, start_row))
        self._maybe_fail("write_rows", sheet)
        data = self.sheets.setdefault(sheet, [])
        for offset, row in enumerate(rows):
            index = start_row - 1 + offset
            while len(data) <= index:
                data.append([])
            data[index] = list(row)


@pytest.fixture
def kv_store(tmp_path):
    """Return a SQLiteKeyValueStore backed by a temp file."""
    from src.adapters.sqlite_store import SQLiteKeyValueStore
    return SQLiteKeyValueStore(db_path=str(tmp_path / "test_tasks.db"))


@pytest.fixture
def task_store(kv_store):
    from src.core.task_store import TaskStore
    return TaskStore(kv_store)


@pytest.fixture
def grid():
    """ScheduleGrid over the built-in blocks (deep-work-1 single, lunch none, admin multiple)."""
    from src.core.schedule_grid import ScheduleGrid
    from src.data.time_blocks import DEFAULT_TIME_BLOCKS
    return ScheduleGrid(DEFAULT_TIME_BLOCKS)


@pytest.fixture
def fake_sheets():
    return InMemorySheets()


@pytest.fixture
def ready_session():
    from src.core.sync_engine import SyncSession
    return SyncSession(
        spreadsheet_id="sheet-123",
        active_sheet_id=100,
        deleted_sheet_id=101,
        auth_token='{"token": "fake"}',
    )
