"""
TaskGrid Assistant — Sheets Sync Engine.

Keeps the local task collection mirrored in a spreadsheet with two sheets:
"Active List" (one row per live task) and "Deleted" (an append-only log of
deleted tasks). Rows are matched to tasks by the "Task ID" column.

Background sync is best-effort: a missing session or a failed remote call is
logged and reported, never raised into the local write that triggered it.
Full export/import are explicit user actions and do raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.data.models import (
    ENERGY_LEVELS,
    PRIORITIES,
    PRIORITY_CRITICAL,
    PRIORITY_IMPORTANT,
    PRIORITY_SOMEDAY,
    TASK_TYPES,
    Task,
)
from src.ports.sheets_port import SheetsError

if TYPE_CHECKING:
    from src.ports.sheets_port import SheetsPort

logger = logging.getLogger(__name__)

ACTIVE_LIST_SHEET_NAME = "Active List"
DELETED_SHEET_NAME = "Deleted"

ACTIVE_LIST_HEADERS = [
    "Task ID", "Title", "URL", "Priority", "Deadline", "Type",
    "Completed", "Display Order", "Last Modified",
]
DELETED_LIST_HEADERS = ACTIVE_LIST_HEADERS + ["Date Deleted"]

ID_HEADER = "Task ID"

# header → key of the partial task produced by row_to_task
_HEADER_FIELDS = {
    "Task ID": "id",
    "Title": "title",
    "URL": "url",
    "Priority": "priority",
    "Deadline": "deadline",
    "Type": "type",
    "Completed": "completed",
    "Display Order": "display_order",
    "Last Modified": "last_modified",
    "Date Deleted": "date_deleted",
}


class RemoteUnavailableError(Exception):
    """Raised when a user-initiated sync runs without a ready session."""


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncSession:
    """Everything a sync call needs. Built on connect, dropped on disconnect."""

    spreadsheet_id: str
    active_sheet_id: int | None
    deleted_sheet_id: int | None
    auth_token: str
    authorized: bool = True
    active_headers: list[str] = field(default_factory=lambda: list(ACTIVE_LIST_HEADERS))
    deleted_headers: list[str] = field(default_factory=lambda: list(DELETED_LIST_HEADERS))
    spreadsheet_title: str = ""

    @property
    def is_ready(self) -> bool:
        return bool(
            self.authorized
            and self.spreadsheet_id
            and self.auth_token
            and self.active_sheet_id is not None
            and self.deleted_sheet_id is not None
            and self.active_headers
            and self.deleted_headers
        )

    def to_record(self) -> dict:
        """Persistable form, without the token."""
        return {
            "spreadsheetId": self.spreadsheet_id,
            "spreadsheetTitle": self.spreadsheet_title,
            "activeSheetId": self.active_sheet_id,
            "deletedSheetId": self.deleted_sheet_id,
        }


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class SyncStatus(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class SyncReport:
    """Outcome of one background sync call."""

    operation: str          # "create" | "update" | "delete"
    task_id: str
    status: SyncStatus
    action: str = ""        # "appended" | "overwritten" | "moved_to_deleted" | ...
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def task_to_row(task: Task, headers: list[str]) -> list[Any]:
    """Project a task onto a header list, in header order.

    "Last Modified" and "Date Deleted" get the current time on every call.
    """
    now = _now_iso()
    row_map: dict[str, Any] = {
        "Task ID": task.id,
        "Title": task.title,
        "URL": task.url or "",
        "Priority": task.priority,
        "Deadline": task.deadline or "",
        "Type": task.type,
        "Completed": task.completed,
        "Display Order": task.display_order,
        "Last Modified": now,
        "Date Deleted": now,
    }
    return [row_map.get(header, "") for header in headers]


def row_to_task(row: list[Any], headers: list[str]) -> dict[str, Any]:
    """Inverse of task_to_row. Returns a partial task dict.

    Missing or empty cells become "", "Completed" and "Display Order" are
    parsed from their text form, and "Task ID" becomes "id".
    """
    data: dict[str, Any] = {}
    for index, header in enumerate(headers):
        value = row[index] if index < len(row) else None
        if value is None:
            value = ""
        if header == "Completed" and isinstance(value, str):
            value = value.strip().lower() == "true"
        elif header == "Display Order" and isinstance(value, str) and value.strip():
            try:
                value = int(float(value))
            except ValueError:
                value = ""
        key = _HEADER_FIELDS.get(header, header.replace(" ", ""))
        data[key] = value
    return data


def _is_iso_date(value: str | None) -> bool:
    if not value:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def task_from_row_data(data: dict[str, Any], fallback_order: int, local: Task | None = None) -> Task:
    """Turn a partial row dict into a Task.

    Fields the sheet doesn't carry (schedule, energy) come from the local
    task with the same id when there is one.
    """
    priority = str(data.get("priority") or PRIORITY_SOMEDAY).upper()
    if priority not in PRIORITIES:
        logger.warning("Row %s has unknown priority %r, using %s", data.get("id"), priority, PRIORITY_SOMEDAY)
        priority = PRIORITY_SOMEDAY

    task_type = str(data.get("type") or "home").lower()
    if task_type not in TASK_TYPES:
        task_type = "home"

    order = data.get("display_order")
    if isinstance(order, bool) or not isinstance(order, int):
        order = fallback_order

    deadline = str(data.get("deadline") or "").strip() or None
    if priority != PRIORITY_CRITICAL:
        deadline = None
    elif not _is_iso_date(deadline):
        logger.warning(
            "Row %s is CRITICAL without a valid deadline (%r), importing as %s",
            data.get("id"), deadline, PRIORITY_IMPORTANT,
        )
        priority = PRIORITY_IMPORTANT
        deadline = None

    task = Task(
        id=str(data["id"]),
        title=str(data.get("title") or ""),
        url=str(data.get("url") or ""),
        priority=priority,
        completed=bool(data.get("completed") is True),
        deadline=deadline,
        type=task_type,
        display_order=order,
    )
    if local is not None:
        task.schedule = [replace(item) for item in local.schedule]
        task.energy = local.energy if local.energy in ENERGY_LEVELS else "low"
        if task.schedule and task.completed != all(item.completed for item in task.schedule):
            # The sheet wins: cascade its completion flag onto the assignments.
            for item in task.schedule:
                item.completed = task.completed
    return task


def _data_start_index(rows: list[list[Any]], headers: list[str]) -> int:
    """1 when the first row is the header row, else 0."""
    if rows and [str(v) for v in rows[0]] == list(headers):
        return 1
    return 0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SyncEngine:
    """Reconciles local tasks with the remote mirror."""

    def __init__(self, sheets: SheetsPort, session: SyncSession | None = None) -> None:
        self._sheets = sheets
        self.session = session

    @property
    def is_active(self) -> bool:
        return self.session is not None and self.session.is_ready

    def _ready_or_warn(self, operation: str, task_id: str) -> bool:
        if not self.is_active:
            logger.warning("Sync %s for %s skipped: no authorized spreadsheet session", operation, task_id)
            return False
        return True

    def _require_ready(self) -> SyncSession:
        if not self.is_active:
            raise RemoteUnavailableError("No spreadsheet connected. Connect one first.")
        return self.session

    # ------------------------------------------------------------------
    # Row lookup
    # ------------------------------------------------------------------

    async def find_row_index(self, sheet: str, task_id: str, headers: list[str]) -> int | None:
        """1-based sheet row holding `task_id`, or None. Raises SheetsError."""
        rows = await self._sheets.get_all_rows(sheet)
        if not rows:
            return None
        id_column = headers.index(ID_HEADER)
        for i in range(_data_start_index(rows, headers), len(rows)):
            row = rows[i]
            if len(row) > id_column and str(row[id_column]) == task_id:
                return i + 1
        return None

    # ------------------------------------------------------------------
    # Background reconciliation
    # ------------------------------------------------------------------

    async def sync_create(self, task: Task) -> SyncReport:
        """Append the task; if its row already exists, overwrite it instead."""
        if not self._ready_or_warn("create", task.id):
            return SyncReport("create", task.id, SyncStatus.SKIPPED)
        headers = self.session.active_headers
        try:
            row_index = await self.find_row_index(ACTIVE_LIST_SHEET_NAME, task.id, headers)
            if row_index is not None:
                logger.warning("Task %s already has row %d on create, updating instead", task.id, row_index)
                await self._sheets.overwrite_row(ACTIVE_LIST_SHEET_NAME, row_index, task_to_row(task, headers))
                return SyncReport("create", task.id, SyncStatus.OK, action="overwritten")
            await self._sheets.append_row(ACTIVE_LIST_SHEET_NAME, task_to_row(task, headers))
        except SheetsError as exc:
            logger.error("Sync create failed for %s: %s", task.id, exc)
            return SyncReport("create", task.id, SyncStatus.FAILED, errors=[str(exc)])

        logger.info("Task %s appended to %s", task.id, ACTIVE_LIST_SHEET_NAME)
        return SyncReport("create", task.id, SyncStatus.OK, action="appended")

    async def sync_update(self, task: Task) -> SyncReport:
        """Overwrite the task's row; append it when no row matches."""
        if not self._ready_or_warn("update", task.id):
            return SyncReport("update", task.id, SyncStatus.SKIPPED)
        headers = self.session.active_headers
        try:
            row_index = await self.find_row_index(ACTIVE_LIST_SHEET_NAME, task.id, headers)
            if row_index is None:
                logger.info("No row for task %s, falling back to append", task.id)
                report = await self.sync_create(task)
                report.operation = "update"
                return report
            await self._sheets.overwrite_row(ACTIVE_LIST_SHEET_NAME, row_index, task_to_row(task, headers))
        except SheetsError as exc:
            logger.error("Sync update failed for %s: %s", task.id, exc)
            return SyncReport("update", task.id, SyncStatus.FAILED, errors=[str(exc)])

        logger.info("Row %d updated for task %s", row_index, task.id)
        return SyncReport("update", task.id, SyncStatus.OK, action="overwritten")

    async def sync_delete(self, task: Task) -> SyncReport:
        """Log the task to the Deleted sheet, then remove it from the Active List.

        The two halves are independent: the removal is attempted even when the
        append failed, and neither is rolled back.
        """
        if not self._ready_or_warn("delete", task.id):
            return SyncReport("delete", task.id, SyncStatus.SKIPPED)
        session = self.session
        errors: list[str] = []
        appended = removed = False

        try:
            await self._sheets.append_row(DELETED_SHEET_NAME, task_to_row(task, session.deleted_headers))
            appended = True
            logger.info("Task %s appended to %s", task.id, DELETED_SHEET_NAME)
        except SheetsError as exc:
            logger.error("Failed to log task %s to %s: %s", task.id, DELETED_SHEET_NAME, exc)
            errors.append(f"Couldn't add the task to the '{DELETED_SHEET_NAME}' sheet: {exc}")

        try:
            row_index = await self.find_row_index(ACTIVE_LIST_SHEET_NAME, task.id, session.active_headers)
            if row_index is None:
                logger.warning("Task %s not found in %s, nothing to remove", task.id, ACTIVE_LIST_SHEET_NAME)
            else:
                await self._sheets.delete_row(ACTIVE_LIST_SHEET_NAME, row_index)
                removed = True
                logger.info("Row %d for task %s removed from %s", row_index, task.id, ACTIVE_LIST_SHEET_NAME)
        except SheetsError as exc:
            logger.error("Failed to remove task %s from %s: %s", task.id, ACTIVE_LIST_SHEET_NAME, exc)
            errors.append(f"Couldn't remove the task from the '{ACTIVE_LIST_SHEET_NAME}' sheet: {exc}")

        if not errors:
            action = "moved_to_deleted" if removed else "logged_deleted"
            return SyncReport("delete", task.id, SyncStatus.OK, action=action)
        status = SyncStatus.PARTIAL if (appended or removed) else SyncStatus.FAILED
        return SyncReport("delete", task.id, status, errors=errors)

    # ------------------------------------------------------------------
    # Full export / import (user-initiated, destructive)
    # ------------------------------------------------------------------

    async def full_export(self, tasks: list[Task]) -> int:
        """Overwrite the Active List with the local tasks. Returns rows written.

        Raises RemoteUnavailableError, SheetsError.
        """
        session = self._require_ready()
        headers = session.active_headers
        await self._sheets.clear_and_keep_header(ACTIVE_LIST_SHEET_NAME, headers)
        rows = [task_to_row(t, headers) for t in tasks]
        if rows:
            await self._sheets.write_rows(ACTIVE_LIST_SHEET_NAME, 2, rows)
        logger.info("Exported %d task(s) to %s", len(rows), ACTIVE_LIST_SHEET_NAME)
        return len(rows)

    async def full_import(self, local_tasks: list[Task] | None = None) -> list[Task]:
        """Read the Active List and return it as a task collection.

        The caller replaces the whole local collection with the result.
        Raises RemoteUnavailableError, SheetsError.
        """
        session = self._require_ready()
        headers = session.active_headers
        rows = await self._sheets.get_all_rows(ACTIVE_LIST_SHEET_NAME)
        local_by_id = {t.id: t for t in (local_tasks or [])}

        imported: list[Task] = []
        seen: set[str] = set()
        data_rows = rows[_data_start_index(rows, headers):]
        for position, row in enumerate(data_rows):
            data = row_to_task(row, headers)
            task_id = str(data.get("id") or "")
            if not task_id:
                logger.warning("Skipping row %d without a task id", position + 1)
                continue
            if task_id in seen:
                logger.warning("Skipping duplicate row for task %s", task_id)
                continue
            seen.add(task_id)
            imported.append(task_from_row_data(data, position, local_by_id.get(task_id)))

        logger.info("Imported %d task(s) from %s", len(imported), ACTIVE_LIST_SHEET_NAME)
        return imported
