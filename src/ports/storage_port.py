"""Storage port — abstract interface for the persisted key-value store.

The task collection is kept under a single key and is always read and
written whole; there is no partial-record update.
"""

from __future__ import annotations

from typing import Any, Protocol


class StorageError(Exception):
    """Raised when the backing store rejects a read or a write."""


class KeyValuePort(Protocol):
    """Abstract async key-value store used by the task store."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...
