"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and renders StatusNotice objects as short
chat messages.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Bot
from telegram.error import TelegramError

if TYPE_CHECKING:
    from src.core.task_service import StatusNotice

logger = logging.getLogger(__name__)

_LEVEL_PREFIX = {
    "info": "ℹ️",
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}


def format_notice(notice: StatusNotice) -> str:
    prefix = _LEVEL_PREFIX.get(notice.level.value, "")
    return f"{prefix} {notice.message}".strip()


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        await self._bot.send_message(chat_id=user_id, text=text)

    async def send_status(self, user_id: int, notice: StatusNotice) -> None:
        try:
            await self._bot.send_message(chat_id=user_id, text=format_notice(notice))
        except TelegramError as exc:
            logger.error("Failed to send status to %s: %s", user_id, exc)
