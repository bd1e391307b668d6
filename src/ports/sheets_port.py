"""Sheets port — abstract interface for the remote tabular mirror.

Core modules depend on this protocol, never on a specific provider.
Row indexes are 1-based sheet rows; row 1 holds the header.
"""

from __future__ import annotations

from typing import Any, Protocol


class SheetsError(Exception):
    """Raised when any remote tabular operation fails."""


class SheetsPort(Protocol):
    """Abstract row-collection interface used by the sync engine."""

    async def get_all_rows(self, sheet: str) -> list[list[Any]]: ...

    async def append_row(self, sheet: str, values: list[Any]) -> None: ...

    async def overwrite_row(self, sheet: str, row_index: int, values: list[Any]) -> None: ...

    async def delete_row(self, sheet: str, row_index: int) -> None: ...

    async def clear_and_keep_header(self, sheet: str, header: list[str]) -> None: ...

    async def write_rows(self, sheet: str, start_row: int, rows: list[list[Any]]) -> None: ...

    async def get_spreadsheet_title(self) -> str: ...

    async def ensure_sheets_exist(self, layout: dict[str, list[str]]) -> dict[str, int]: ...
