"""
TaskGrid Assistant — UI-Agnostic Task Service.

The boundary the user interface talks to. Orchestrates the task store, the
schedule grid, lane ordering and the sheets mirror, and turns every outcome
into a structured response object carrying a short status message.

Local writes are answered immediately. The matching sheets sync call is
started in the background (fire-and-forget); its failures come back as
StatusNotice objects pushed to the status listener, so drift between the
local list and the spreadsheet is visible without blocking the user.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from src.adapters.google_sheets import extract_spreadsheet_id
from src.core.ordering import OrderingService, SwapResult
from src.core.schedule_grid import (
    REJECTION_MESSAGES,
    AssignResult,
    set_assignment_completed,
    set_task_completed,
)
from src.core.sync_engine import (
    ACTIVE_LIST_HEADERS,
    ACTIVE_LIST_SHEET_NAME,
    DELETED_LIST_HEADERS,
    DELETED_SHEET_NAME,
    RemoteUnavailableError,
    SyncEngine,
    SyncReport,
    SyncSession,
    SyncStatus,
)
from src.core.task_store import TaskNotFoundError, TaskValidationError
from src.data.models import PRIORITIES, PRIORITY_CRITICAL, PRIORITY_SOMEDAY, Task
from src.ports.sheets_port import SheetsError
from src.ports.storage_port import StorageError

if TYPE_CHECKING:
    from src.core.schedule_grid import ScheduleGrid
    from src.core.task_store import TaskStore
    from src.ports.sheets_port import SheetsPort
    from src.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

SYNC_SETTINGS_KEY = "sync_settings"


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    NO_ACTION = "no_action"


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class SuccessResponse(ServiceResponse):
    task: Task | None = None
    tasks: list[Task] = field(default_factory=list)


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class NoActionResponse(ServiceResponse):
    pass


def _ok(message: str, task: Task | None = None, tasks: list[Task] | None = None) -> SuccessResponse:
    return SuccessResponse(kind=ResponseKind.SUCCESS, message=message, task=task, tasks=tasks or [])


def _error(message: str) -> ErrorResponse:
    return ErrorResponse(kind=ResponseKind.ERROR, message=message)


def _no_action(message: str) -> NoActionResponse:
    return NoActionResponse(kind=ResponseKind.NO_ACTION, message=message)


class NoticeLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class StatusNotice:
    """A transient status message not tied to a direct reply (background sync)."""

    level: NoticeLevel
    message: str


StatusListener = Callable[[StatusNotice], Awaitable[None]]
SheetsFactory = Callable[[str, "str | None"], "SheetsPort"]


def notice_for_report(report: SyncReport, title: str = "") -> StatusNotice | None:
    """Translate a background sync report into a notice; None when there is nothing to say."""
    label = f"'{title}'" if title else report.task_id
    if report.status is SyncStatus.FAILED:
        detail = "; ".join(report.errors)
        return StatusNotice(NoticeLevel.ERROR, f"Sheet sync failed for {label} ({report.operation}): {detail}")
    if report.status is SyncStatus.PARTIAL:
        detail = "; ".join(report.errors)
        return StatusNotice(
            NoticeLevel.WARNING,
            f"Sheet sync for {label} only partly succeeded: {detail}. "
            "Run /export to bring the sheet back in line.",
        )
    return None


# ---------------------------------------------------------------------------
# TaskService
# ---------------------------------------------------------------------------


class TaskService:
    """Operations exposed to the UI. Returns response objects, never sends messages."""

    def __init__(
        self,
        store: TaskStore,
        grid: ScheduleGrid,
        storage: KeyValuePort | None = None,
        sheets_factory: SheetsFactory | None = None,
        status_listener: StatusListener | None = None,
    ) -> None:
        self._store = store
        self._grid = grid
        self._ordering = OrderingService(store)
        self._storage = storage
        if sheets_factory is None:
            from src.adapters.sheets_factory import create_sheets_adapter
            sheets_factory = create_sheets_adapter
        self._sheets_factory = sheets_factory
        self._status_listener = status_listener
        self._sync: SyncEngine | None = None
        self._pending: set[asyncio.Task] = set()
        self._sync_lock = asyncio.Lock()

    @property
    def grid(self) -> ScheduleGrid:
        return self._grid

    @property
    def sync_active(self) -> bool:
        return self._sync is not None and self._sync.is_active

    def set_status_listener(self, listener: StatusListener | None) -> None:
        self._status_listener = listener

    # ------------------------------------------------------------------
    # Background sync plumbing
    # ------------------------------------------------------------------

    def _fire_sync(self, operation: str, task: Task) -> None:
        """Start the sync call for a local write without waiting for it."""
        if self._sync is None:
            logger.debug("Sync %s for %s not started: no spreadsheet connected", operation, task.id)
            return
        bg = asyncio.create_task(self._run_sync(self._sync, operation, copy.deepcopy(task)))
        self._pending.add(bg)
        bg.add_done_callback(self._pending.discard)

    async def _run_sync(self, engine: SyncEngine, operation: str, task: Task) -> SyncReport | None:
        handlers = {
            "create": engine.sync_create,
            "update": engine.sync_update,
            "delete": engine.sync_delete,
        }
        # Sync calls run one at a time, in the order the writes happened.
        try:
            async with self._sync_lock:
                report = await handlers[operation](task)
        except Exception as exc:
            logger.error("Unexpected error during sync %s of %s: %s", operation, task.id, exc)
            await self._emit(StatusNotice(NoticeLevel.ERROR, f"Sheet sync failed for '{task.title}': {exc}"))
            return None

        notice = notice_for_report(report, task.title)
        if notice is not None:
            await self._emit(notice)
        return report

    async def _emit(self, notice: StatusNotice) -> None:
        if self._status_listener is None:
            logger.info("Status (%s): %s", notice.level.value, notice.message)
            return
        try:
            await self._status_listener(notice)
        except Exception as exc:
            logger.error("Failed to deliver status notice: %s", exc)

    async def drain(self) -> None:
        """Wait for every background sync started so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self) -> list[Task]:
        """All tasks, lane by lane (critical first), by rank inside a lane."""
        tasks = await self._store.get_all()
        return sorted(tasks, key=lambda t: (PRIORITIES.index(t.priority), t.display_order))

    async def get_task(self, task_id: str) -> Task | None:
        return await self._store.get_by_id(task_id)

    async def create_task(
        self,
        title: str,
        url: str = "",
        priority: str = PRIORITY_SOMEDAY,
        deadline: str | None = None,
        type: str = "home",
        energy: str | None = None,
    ) -> ServiceResponse:
        if not title or not title.strip():
            return _error("Task title is required.")
        try:
            task = await self._store.create(
                title=title, url=url, priority=priority, deadline=deadline, type=type, energy=energy,
            )
        except TaskValidationError as exc:
            return _error(str(exc))
        except StorageError as exc:
            logger.error("create_task failed: %s", exc)
            return _error("Couldn't save the task. Please try again.")

        self._fire_sync("create", task)
        return _ok("Task added!", task=task)

    async def update_task(self, task: Task) -> ServiceResponse:
        """Full replace of a task (read-modify-write by the caller)."""
        if task.priority != PRIORITY_CRITICAL:
            task.deadline = None
        try:
            found = await self._store.update(task)
        except TaskValidationError as exc:
            return _error(str(exc))
        except StorageError as exc:
            logger.error("update_task failed for %s: %s", task.id, exc)
            return _error("Couldn't save your changes. Please try again.")

        if not found:
            return _error("Task not found.")
        self._fire_sync("update", task)
        return _ok("Task updated.", task=task)

    async def delete_task(self, task_id: str) -> ServiceResponse:
        try:
            task = await self._store.get_by_id(task_id)
            if task is None or not await self._store.delete(task_id):
                return _error("Task not found.")
        except StorageError as exc:
            logger.error("delete_task failed for %s: %s", task_id, exc)
            return _error("Couldn't delete the task. Please try again.")

        self._fire_sync("delete", task)
        return _ok(f"Task '{task.title}' deleted.", task=task)

    async def _modify(self, task_id: str, mutator, success_message: str) -> ServiceResponse:
        """Shared path for the targeted helpers built on TaskStore.modify."""
        try:
            task, result = await self._store.modify(task_id, mutator)
        except TaskNotFoundError:
            return _error("Task not found.")
        except TaskValidationError as exc:
            return _error(str(exc))
        except StorageError as exc:
            logger.error("Saving task %s failed: %s", task_id, exc)
            return _error("Couldn't save your changes. Please try again.")

        if isinstance(result, AssignResult) and result is not AssignResult.OK:
            message = REJECTION_MESSAGES[result]
            if result is AssignResult.ALREADY_ASSIGNED:
                return _no_action(message)
            return _error(message)
        if result is False:
            return _no_action("Nothing to change.")

        self._fire_sync("update", task)
        return _ok(success_message, task=task)

    async def set_completed(self, task_id: str, completed: bool) -> ServiceResponse:
        def mutate(task: Task, tasks: list[Task]):
            set_task_completed(task, completed)
            return True, True

        message = "Task completed!" if completed else "Task reopened."
        return await self._modify(task_id, mutate, message)

    async def set_assignment_completed(
        self, task_id: str, day: str, block_id: str, completed: bool,
    ) -> ServiceResponse:
        def mutate(task: Task, tasks: list[Task]):
            found = set_assignment_completed(task, day, block_id, completed)
            if not found:
                return AssignResult.NOT_ASSIGNED, False
            return AssignResult.OK, True

        return await self._modify(task_id, mutate, "Slot updated.")

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    async def assign_slot(self, task_id: str, day: str, block_id: str) -> ServiceResponse:
        def mutate(task: Task, tasks: list[Task]):
            result = self._grid.assign(task, day, block_id, tasks)
            return result, result.changed

        return await self._modify(task_id, mutate, f"Scheduled for {day.capitalize()} / {block_id}.")

    async def unassign_slot(self, task_id: str, day: str, block_id: str) -> ServiceResponse:
        def mutate(task: Task, tasks: list[Task]):
            result = self._grid.unassign(task, day, block_id)
            return result, result.changed

        return await self._modify(task_id, mutate, f"Removed from {day.capitalize()} / {block_id}.")

    async def move_slot(
        self,
        task_id: str,
        from_day: str | None,
        from_block_id: str | None,
        to_day: str,
        to_block_id: str,
    ) -> ServiceResponse:
        if from_day == to_day and from_block_id == to_block_id:
            return _no_action("The task is already in that slot.")

        def mutate(task: Task, tasks: list[Task]):
            result = self._grid.move(task, from_day, from_block_id, to_day, to_block_id, tasks)
            return result, result.changed

        return await self._modify(task_id, mutate, f"Moved to {to_day.capitalize()} / {to_block_id}.")

    async def set_schedule(self, task_id: str, slots: list[tuple[str, str]]) -> ServiceResponse:
        def mutate(task: Task, tasks: list[Task]):
            result = self._grid.replace_schedule(task, slots, tasks)
            return result, result.changed

        return await self._modify(task_id, mutate, "Schedule saved.")

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    async def move_task(self, task_id: str, direction: str) -> ServiceResponse:
        if direction not in ("up", "down"):
            return _error("Direction must be 'up' or 'down'.")
        try:
            result, changed = await self._ordering.swap_with_neighbor(task_id, direction)
        except (TaskValidationError, TaskNotFoundError, StorageError) as exc:
            logger.error("move_task failed for %s: %s", task_id, exc)
            return _error("Couldn't reorder the task. Please try again.")

        if result is SwapResult.NOT_FOUND:
            return _error("Task not found.")
        if result is SwapResult.AT_BOUNDARY:
            edge = "top" if direction == "up" else "bottom"
            return _no_action(f"The task is already at the {edge} of its list.")

        for task in changed:
            self._fire_sync("update", task)
        return _ok("Order updated.", tasks=changed)

    async def reorder(self, lane: str, ordered_ids: list[str]) -> ServiceResponse:
        try:
            tasks = await self._ordering.reorder_by_position(lane, ordered_ids)
        except TaskNotFoundError as exc:
            return _error(f"Task not found: {exc}")
        except TaskValidationError as exc:
            return _error(str(exc))
        except StorageError as exc:
            logger.error("reorder failed for lane %s: %s", lane, exc)
            return _error("Couldn't save the new order. Please try again.")

        for task in tasks:
            self._fire_sync("update", task)
        return _ok("Order updated.", tasks=tasks)

    # ------------------------------------------------------------------
    # Remote mirror
    # ------------------------------------------------------------------

    async def connect_remote(self, token_json: str | None, spreadsheet_ref: str) -> ServiceResponse:
        """Authorize against a spreadsheet, create its sheets if needed and start syncing."""
        spreadsheet_id = extract_spreadsheet_id(spreadsheet_ref)
        if spreadsheet_id is None:
            return _error("That doesn't look like a spreadsheet ID or URL.")
        if not token_json:
            return _error("Google Sheets isn't authorized yet. Run `python main.py auth` first.")

        sheets = self._sheets_factory(spreadsheet_id, token_json)
        try:
            title = await sheets.get_spreadsheet_title()
            sheet_ids = await sheets.ensure_sheets_exist({
                ACTIVE_LIST_SHEET_NAME: ACTIVE_LIST_HEADERS,
                DELETED_SHEET_NAME: DELETED_LIST_HEADERS,
            })
        except SheetsError as exc:
            logger.error("connect_remote failed for %s: %s", spreadsheet_id, exc)
            return _error(f"Couldn't connect to the spreadsheet: {exc}")

        session = SyncSession(
            spreadsheet_id=spreadsheet_id,
            active_sheet_id=sheet_ids.get(ACTIVE_LIST_SHEET_NAME),
            deleted_sheet_id=sheet_ids.get(DELETED_SHEET_NAME),
            auth_token=token_json,
            spreadsheet_title=title,
        )
        self._sync = SyncEngine(sheets, session)

        if self._storage is not None:
            try:
                await self._storage.set(SYNC_SETTINGS_KEY, session.to_record())
            except StorageError as exc:
                logger.warning("Couldn't remember the connected spreadsheet: %s", exc)

        logger.info("Connected to spreadsheet %s ('%s')", spreadsheet_id, title)
        return _ok(f"Connected to '{title}'. Changes will now be mirrored to the sheet.")

    async def restore_remote(self, token_json: str | None, fallback_spreadsheet_id: str = "") -> ServiceResponse:
        """Reconnect to the last spreadsheet (or the configured one) at startup."""
        spreadsheet_id = fallback_spreadsheet_id
        if self._storage is not None:
            try:
                saved = await self._storage.get(SYNC_SETTINGS_KEY)
            except StorageError as exc:
                logger.warning("Couldn't read saved sync settings: %s", exc)
                saved = None
            if saved and saved.get("spreadsheetId"):
                spreadsheet_id = saved["spreadsheetId"]

        if not spreadsheet_id:
            return _no_action("No spreadsheet configured.")
        return await self.connect_remote(token_json, spreadsheet_id)

    async def disconnect_remote(self) -> ServiceResponse:
        if self._sync is None:
            return _no_action("No spreadsheet is connected.")
        await self.drain()
        self._sync = None
        if self._storage is not None:
            try:
                await self._storage.delete(SYNC_SETTINGS_KEY)
            except StorageError as exc:
                logger.warning("Couldn't clear saved sync settings: %s", exc)
        logger.info("Spreadsheet disconnected")
        return _ok("Disconnected. Tasks are now kept locally only.")

    async def export_all(self) -> ServiceResponse:
        """Overwrite the Active List sheet with the local tasks."""
        if self._sync is None:
            return _error("Connect a spreadsheet first.")
        await self.drain()
        try:
            tasks = await self._store.get_all()
            count = await self._sync.full_export(tasks)
        except RemoteUnavailableError as exc:
            return _error(str(exc))
        except (SheetsError, StorageError) as exc:
            logger.error("export_all failed: %s", exc)
            return _error(f"Export failed: {exc}")
        return _ok(f"Exported {count} task(s) to the sheet.")

    async def import_all(self) -> ServiceResponse:
        """Replace the local tasks with the Active List sheet. Destructive."""
        if self._sync is None:
            return _error("Connect a spreadsheet first.")
        await self.drain()
        try:
            local = await self._store.get_all()
            tasks = await self._sync.full_import(local)
            await self._store.replace_all(tasks)
        except RemoteUnavailableError as exc:
            return _error(str(exc))
        except (SheetsError, StorageError) as exc:
            logger.error("import_all failed: %s", exc)
            return _error(f"Import failed: {exc}")
        return _ok(f"Imported {len(tasks)} task(s) from the sheet.", tasks=tasks)
