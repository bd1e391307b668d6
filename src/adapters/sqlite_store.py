"""SQLite key-value adapter — implements KeyValuePort.

Values are stored as JSON text, one row per key. Each `set` is a single
INSERT OR REPLACE, so a write either lands whole or not at all.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from src.ports.storage_port import StorageError

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore:
    """SQLite-backed implementation of KeyValuePort."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn: sqlite3.Connection | None = None
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._db_path == ":memory:":
            # A fresh :memory: connection would be a fresh empty database.
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:")
            return self._memory_conn
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key        TEXT PRIMARY KEY,
                    value      TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)
        logger.debug("kv_store table initialized at %s", self._db_path)

    async def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to read key '%s': %s", key, exc)
            raise StorageError(f"Failed to read '{key}': {exc}") from exc

        if row is None:
            return default
        return json.loads(row[0])

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, datetime('now'))
                    """,
                    (key, payload),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to write key '%s': %s", key, exc)
            raise StorageError(f"Failed to write '{key}': {exc}") from exc
        logger.debug("Key '%s' written (%d bytes)", key, len(payload))

    async def delete(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            logger.error("Failed to delete key '%s': %s", key, exc)
            raise StorageError(f"Failed to delete '{key}': {exc}") from exc
