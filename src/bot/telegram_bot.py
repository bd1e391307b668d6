"""
TaskGrid Assistant — Telegram Bot.

A thin command surface over TaskService. Handlers parse arguments, call one
service operation and render the returned ServiceResponse; no task rule
lives here.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from src.config import settings
from src.core.task_service import ResponseKind, ServiceResponse
from src.data.models import (
    CAPACITY_NONE,
    CAPACITY_SINGLE,
    DAYS,
    ENERGY_LEVELS,
    PRIORITIES,
    PRIORITY_CRITICAL,
    PRIORITY_SOMEDAY,
    TASK_TYPES,
    Task,
)

if TYPE_CHECKING:
    from src.core.task_service import StatusNotice, TaskService
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

LAST_LISTING_KEY = "last_listing"


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from unauthorized users.

    Does NOT send any response to strangers. The bot must not reveal
    its existence to them.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------

_KIND_PREFIX = {
    ResponseKind.SUCCESS: "✅",
    ResponseKind.ERROR: "❌",
    ResponseKind.NO_ACTION: "ℹ️",
}


def render_response(response: ServiceResponse) -> str:
    return f"{_KIND_PREFIX[response.kind]} {response.message}"


def format_task_line(position: int, task: Task) -> str:
    mark = "☑" if task.completed else "☐"
    line = f"{position}. {mark} {task.title}"
    extras = [task.type]
    if task.deadline:
        extras.append(f"due {task.deadline}")
    if task.energy == "high":
        extras.append("⚡")
    line += f" ({', '.join(extras)})"
    if task.schedule:
        slots = ", ".join(
            f"{a.day[:3].capitalize()}/{a.block_id}{' ✓' if a.completed else ''}" for a in task.schedule
        )
        line += f"\n     📅 {slots}"
    return line


def format_task_list(tasks: list[Task]) -> str:
    """Group tasks by lane; positions run across the whole listing."""
    if not tasks:
        return "No tasks yet. Add one with /add <title>."
    lines: list[str] = []
    position = 0
    for priority in PRIORITIES:
        lane = [t for t in tasks if t.priority == priority]
        if not lane:
            continue
        lines.append(f"\n{priority}")
        for task in lane:
            position += 1
            lines.append(format_task_line(position, task))
    return "\n".join(lines).strip()


def parse_add_args(text: str) -> dict[str, Any]:
    """Parse `<title> [| priority [| deadline [| type [| energy [| url]]]]]`.

    Raises ValueError with a user-facing message on a bad field.
    """
    parts = [p.strip() for p in text.split("|")]
    title = parts[0] if parts else ""
    if not title:
        raise ValueError("Usage: /add <title> [| priority [| deadline [| type [| energy [| url]]]]]")

    fields: dict[str, Any] = {"title": title}
    if len(parts) > 1 and parts[1]:
        priority = parts[1].upper()
        if priority not in PRIORITIES:
            raise ValueError(f"Priority must be one of: {', '.join(p.lower() for p in PRIORITIES)}")
        fields["priority"] = priority
    if len(parts) > 2 and parts[2]:
        fields["deadline"] = parts[2]
    if len(parts) > 3 and parts[3]:
        task_type = parts[3].lower()
        if task_type not in TASK_TYPES:
            raise ValueError(f"Type must be one of: {', '.join(TASK_TYPES)}")
        fields["type"] = task_type
    if len(parts) > 4 and parts[4]:
        energy = parts[4].lower()
        if energy not in ENERGY_LEVELS:
            raise ValueError(f"Energy must be one of: {', '.join(ENERGY_LEVELS)}")
        fields["energy"] = energy
    if len(parts) > 5 and parts[5]:
        fields["url"] = parts[5]
    return fields


def resolve_task_ref(ref: str, context: ContextTypes.DEFAULT_TYPE) -> str:
    """Map a 1-based position from the last /tasks listing to a task id.

    Anything that isn't a position is taken as a raw task id.
    """
    listing: list[str] = context.user_data.get(LAST_LISTING_KEY, [])
    if ref.isdigit():
        index = int(ref) - 1
        if 0 <= index < len(listing):
            return listing[index]
    return ref


def _service(context: ContextTypes.DEFAULT_TYPE) -> TaskService:
    return context.bot_data["service"]


async def _reply(update: Update, response: ServiceResponse) -> None:
    await update.message.reply_text(render_response(response))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *TaskGrid Assistant*!\n\n"
        "I keep your prioritized task list and weekly plan:\n"
        "• /add a task, /tasks to see them\n"
        "• /assign a task to a day and time block\n"
        "• /connect a Google Sheet to mirror the list\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/tasks — List tasks by priority\n"
        "/add <title> | priority | deadline | type | energy | url — Add a task\n"
        "/done <n> — Mark a task complete\n"
        "/undone <n> — Reopen a task\n"
        "/delete <n> — Delete a task\n"
        "/assign <n> <day> <block> — Schedule a task\n"
        "/unassign <n> <day> <block> — Remove a task from a slot\n"
        "/up <n>, /down <n> — Move a task within its priority\n"
        "/blocks — Show the weekly time blocks\n"
        "/connect <spreadsheet id or url> — Mirror tasks to Google Sheets\n"
        "/disconnect — Stop mirroring\n"
        "/export — Overwrite the sheet with your tasks\n"
        "/import — Replace your tasks with the sheet\n"
        "/help — Show this message\n\n"
        "<n> is the number shown by /tasks (or a task id)."
    )


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks — list every task and remember the numbering."""
    try:
        tasks = await _service(context).list_tasks()
    except Exception as exc:
        logger.error("/tasks error: %s", exc)
        await update.message.reply_text("Couldn't load tasks. Please try again.")
        return

    ordered = [t for p in PRIORITIES for t in tasks if t.priority == p]
    context.user_data[LAST_LISTING_KEY] = [t.id for t in ordered]
    await update.message.reply_text(format_task_list(ordered))


@authorized_only
async def cmd_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add <title> [| priority [| deadline [| type [| energy [| url]]]]]."""
    try:
        fields = parse_add_args(" ".join(context.args or []))
    except ValueError as exc:
        await update.message.reply_text(str(exc))
        return

    if fields.get("priority", PRIORITY_SOMEDAY) != PRIORITY_CRITICAL:
        fields.pop("deadline", None)
    response = await _service(context).create_task(**fields)
    await _reply(update, response)


async def _set_completed(update: Update, context: ContextTypes.DEFAULT_TYPE, completed: bool) -> None:
    if not context.args:
        command = "done" if completed else "undone"
        await update.message.reply_text(f"Usage: /{command} <n>\nUse /tasks to see the numbers.")
        return
    task_id = resolve_task_ref(context.args[0], context)
    response = await _service(context).set_completed(task_id, completed)
    await _reply(update, response)


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <n> — complete a task and all its slots."""
    await _set_completed(update, context, True)


@authorized_only
async def cmd_undone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /undone <n>."""
    await _set_completed(update, context, False)


@authorized_only
async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete <n> — ask for confirmation first."""
    if not context.args:
        await update.message.reply_text("Usage: /delete <n>\nUse /tasks to see the numbers.")
        return

    task_id = resolve_task_ref(context.args[0], context)
    task = await _service(context).get_task(task_id)
    if task is None:
        await update.message.reply_text("Task not found. Use /tasks to see the numbers.")
        return

    keyboard = [[
        InlineKeyboardButton("Delete", callback_data=f"confirm:delete:{task.id}"),
        InlineKeyboardButton("Keep", callback_data="confirm:abort"),
    ]]
    await update.message.reply_text(
        f"Delete '{task.title}'?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


def _parse_slot_args(context: ContextTypes.DEFAULT_TYPE) -> tuple[str, str, str] | None:
    args = context.args or []
    if len(args) != 3:
        return None
    return resolve_task_ref(args[0], context), args[1].lower(), args[2]


@authorized_only
async def cmd_assign(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /assign <n> <day> <block>."""
    parsed = _parse_slot_args(context)
    if parsed is None:
        await update.message.reply_text("Usage: /assign <n> <day> <block>\nUse /blocks to see block ids.")
        return
    response = await _service(context).assign_slot(*parsed)
    await _reply(update, response)


@authorized_only
async def cmd_unassign(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /unassign <n> <day> <block>."""
    parsed = _parse_slot_args(context)
    if parsed is None:
        await update.message.reply_text("Usage: /unassign <n> <day> <block>")
        return
    response = await _service(context).unassign_slot(*parsed)
    await _reply(update, response)


async def _move(update: Update, context: ContextTypes.DEFAULT_TYPE, direction: str) -> None:
    if not context.args:
        await update.message.reply_text(f"Usage: /{direction} <n>")
        return
    task_id = resolve_task_ref(context.args[0], context)
    response = await _service(context).move_task(task_id, direction)
    await _reply(update, response)


@authorized_only
async def cmd_up(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _move(update, context, "up")


@authorized_only
async def cmd_down(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _move(update, context, "down")


@authorized_only
async def cmd_blocks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /blocks — show the time block catalog."""
    capacity_label = {CAPACITY_NONE: "closed", CAPACITY_SINGLE: "one task"}
    lines = ["Time blocks:"]
    for block in _service(context).grid.blocks:
        lines.append(f"• {block.id} — {block.label} ({capacity_label.get(block.capacity, 'any number')})")
    lines.append(f"\nDays: {', '.join(DAYS)}")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_connect(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /connect <spreadsheet id or url>."""
    from src.integrations.google_auth import load_stored_token

    if not context.args:
        await update.message.reply_text("Usage: /connect <spreadsheet id or url>")
        return

    token = load_stored_token()
    response = await _service(context).connect_remote(token, context.args[0])
    await _reply(update, response)


@authorized_only
async def cmd_disconnect(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    response = await _service(context).disconnect_remote()
    await _reply(update, response)


@authorized_only
async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export — confirm, then overwrite the Active List sheet."""
    keyboard = [[
        InlineKeyboardButton("Overwrite sheet", callback_data="confirm:export"),
        InlineKeyboardButton("Cancel", callback_data="confirm:abort"),
    ]]
    await update.message.reply_text(
        "This will replace everything in the 'Active List' sheet with your current tasks. Continue?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


@authorized_only
async def cmd_import(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /import — confirm, then replace local tasks with the sheet."""
    keyboard = [[
        InlineKeyboardButton("Replace my tasks", callback_data="confirm:import"),
        InlineKeyboardButton("Cancel", callback_data="confirm:abort"),
    ]]
    await update.message.reply_text(
        "This will replace ALL your local tasks with the 'Active List' sheet. Continue?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_confirm_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle the inline confirmation buttons of /delete, /export and /import."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    parts = query.data.split(":", 2)
    action = parts[1] if len(parts) > 1 else ""
    service = _service(context)

    if action == "delete" and len(parts) == 3:
        response = await service.delete_task(parts[2])
        context.user_data.pop(LAST_LISTING_KEY, None)
    elif action == "export":
        response = await service.export_all()
    elif action == "import":
        response = await service.import_all()
        context.user_data.pop(LAST_LISTING_KEY, None)
    else:
        await query.edit_message_text("Cancelled.")
        return

    await query.edit_message_text(render_response(response))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_service() -> TaskService:
    """Build the default TaskService on top of the SQLite key-value store."""
    from src.adapters.sqlite_store import SQLiteKeyValueStore
    from src.core.schedule_grid import ScheduleGrid
    from src.core.task_service import TaskService
    from src.core.task_store import TaskStore
    from src.data.time_blocks import load_time_blocks

    storage = SQLiteKeyValueStore()
    store = TaskStore(storage, default_energy=settings.DEFAULT_ENERGY)
    grid = ScheduleGrid(load_time_blocks(settings.TIME_BLOCKS_PATH or None))
    return TaskService(store, grid, storage=storage)


def make_status_listener(notifier: NotificationPort) -> Callable[[StatusNotice], Coroutine[Any, Any, None]]:
    """Forward background status notices to every allowed user."""

    async def _listener(notice: StatusNotice) -> None:
        for user_id in settings.ALLOWED_USER_IDS:
            await notifier.send_status(user_id, notice)

    return _listener


async def _restore_remote(app: Application) -> None:
    """post_init hook: reconnect the last spreadsheet, if any."""
    from src.integrations.google_auth import load_stored_token

    service: TaskService = app.bot_data["service"]
    token = load_stored_token()
    response = await service.restore_remote(token, settings.SPREADSHEET_ID)
    if response.kind is ResponseKind.ERROR:
        logger.warning("Spreadsheet not reconnected: %s", response.message)
    else:
        logger.info("Startup sync: %s", response.message)


def build_app(
    service: TaskService | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: TaskService instance. Defaults to build_service().
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).post_init(_restore_remote).build()

    if service is None:
        service = build_service()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    service.set_status_listener(make_status_listener(notifier))

    app.bot_data["service"] = service
    app.bot_data["notifier"] = notifier

    commands = {
        "start": cmd_start,
        "help": cmd_help,
        "tasks": cmd_tasks,
        "add": cmd_add,
        "done": cmd_done,
        "undone": cmd_undone,
        "delete": cmd_delete,
        "assign": cmd_assign,
        "unassign": cmd_unassign,
        "up": cmd_up,
        "down": cmd_down,
        "blocks": cmd_blocks,
        "connect": cmd_connect,
        "disconnect": cmd_disconnect,
        "export": cmd_export,
        "import": cmd_import,
    }
    for name, handler in commands.items():
        app.add_handler(CommandHandler(name, handler))
    app.add_handler(CallbackQueryHandler(_handle_confirm_callback, pattern=r"^confirm:"))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting TaskGrid Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
