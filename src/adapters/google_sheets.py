"""Google Sheets adapter — implements SheetsPort for the Google Sheets API v4.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the SheetsPort protocol.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from src.ports.sheets_port import SheetsError

logger = logging.getLogger(__name__)

_SPREADSHEET_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
_SPREADSHEET_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,}$")


def extract_spreadsheet_id(ref: str) -> str | None:
    """Accept a bare spreadsheet id or a full docs.google.com URL."""
    ref = (ref or "").strip()
    match = _SPREADSHEET_URL_RE.search(ref)
    if match:
        return match.group(1)
    if _SPREADSHEET_ID_RE.match(ref):
        return ref
    return None


def column_letter(n: int) -> str:
    """1 → A, 26 → Z, 27 → AA."""
    letters = ""
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _a1(sheet: str, cells: str | None = None) -> str:
    quoted = "'" + sheet.replace("'", "''") + "'"
    return f"{quoted}!{cells}" if cells else quoted


class GoogleSheetsAdapter:
    """Google Sheets implementation of SheetsPort."""

    def __init__(self, spreadsheet_id: str, token_json: str | None = None, service: Any = None) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._token_json = token_json
        self._service = service
        self._sheet_ids: dict[str, int] = {}

    def _get_service(self):
        if self._service is None:
            if not self._token_json:
                raise SheetsError("Google Sheets is not authorized.")
            from src.integrations.google_auth import get_sheets_service_for_token
            self._service = get_sheets_service_for_token(self._token_json)
        return self._service

    def _values(self):
        return self._get_service().spreadsheets().values()

    # ------------------------------------------------------------------
    # Spreadsheet metadata
    # ------------------------------------------------------------------

    async def get_spreadsheet_title(self) -> str:
        try:
            result = (
                self._get_service().spreadsheets()
                .get(spreadsheetId=self._spreadsheet_id, fields="properties(title)")
                .execute()
            )
            return result["properties"]["title"]
        except Exception as exc:
            logger.error("Failed to fetch spreadsheet title: %s", exc)
            raise SheetsError(f"Failed to fetch spreadsheet title: {exc}") from exc

    async def _list_sheets(self) -> dict[str, int]:
        result = (
            self._get_service().spreadsheets()
            .get(spreadsheetId=self._spreadsheet_id, fields="sheets(properties(title,sheetId))")
            .execute()
        )
        return {
            s["properties"]["title"]: s["properties"]["sheetId"]
            for s in result.get("sheets", [])
        }

    async def ensure_sheets_exist(self, layout: dict[str, list[str]]) -> dict[str, int]:
        """Create missing sheets (with their header row). Returns {title: sheetId}.

        Args:
            layout: sheet title → header row, e.g. {"Active List": [...], "Deleted": [...]}.
        """
        try:
            sheets = await self._list_sheets()
            missing = [title for title in layout if title not in sheets]

            if missing:
                self._get_service().spreadsheets().batchUpdate(
                    spreadsheetId=self._spreadsheet_id,
                    body={"requests": [{"addSheet": {"properties": {"title": t}}} for t in missing]},
                ).execute()
                sheets = await self._list_sheets()
                for title in missing:
                    self._values().update(
                        spreadsheetId=self._spreadsheet_id,
                        range=_a1(title, "A1"),
                        valueInputOption="USER_ENTERED",
                        body={"values": [layout[title]]},
                    ).execute()
                logger.info("Created sheet(s) %s with header rows", ", ".join(missing))

            absent = [title for title in layout if title not in sheets]
            if absent:
                raise SheetsError(f"Sheets still missing after creation: {', '.join(absent)}")
        except SheetsError:
            raise
        except Exception as exc:
            logger.error("Error ensuring sheets exist: %s", exc)
            message = str(exc)
            if "PERMISSION_DENIED" in message or "403" in message:
                message = "Permission denied. Check the OAuth scopes and that the Sheets API is enabled."
            raise SheetsError(f"Failed to ensure sheets exist: {message}") from exc

        self._sheet_ids.update({title: sheets[title] for title in layout})
        return {title: sheets[title] for title in layout}

    async def _sheet_id(self, sheet: str) -> int:
        if sheet not in self._sheet_ids:
            self._sheet_ids.update(await self._list_sheets())
        if sheet not in self._sheet_ids:
            raise SheetsError(f"Sheet '{sheet}' not found")
        return self._sheet_ids[sheet]

    # ------------------------------------------------------------------
    # SheetsPort
    # ------------------------------------------------------------------

    async def get_all_rows(self, sheet: str) -> list[list[Any]]:
        try:
            result = self._values().get(spreadsheetId=self._spreadsheet_id, range=_a1(sheet)).execute()
        except Exception as exc:
            logger.error("Error getting rows from %s: %s", sheet, exc)
            raise SheetsError(f"Failed to read '{sheet}': {exc}") from exc
        rows = result.get("values", [])
        logger.debug("Read %d row(s) from %s", len(rows), sheet)
        return rows

    async def append_row(self, sheet: str, values: list[Any]) -> None:
        try:
            self._values().append(
                spreadsheetId=self._spreadsheet_id,
                range=_a1(sheet),
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"values": [values]},
            ).execute()
        except Exception as exc:
            logger.error("Error appending row to %s: %s", sheet, exc)
            raise SheetsError(f"Failed to append to '{sheet}': {exc}") from exc

    async def overwrite_row(self, sheet: str, row_index: int, values: list[Any]) -> None:
        if row_index <= 0:
            raise SheetsError("Row index must be 1-based.")
        cells = f"A{row_index}:{column_letter(len(values))}{row_index}"
        try:
            self._values().update(
                spreadsheetId=self._spreadsheet_id,
                range=_a1(sheet, cells),
                valueInputOption="USER_ENTERED",
                body={"values": [values]},
            ).execute()
        except Exception as exc:
            logger.error("Error updating row %d in %s: %s", row_index, sheet, exc)
            raise SheetsError(f"Failed to update row {row_index} of '{sheet}': {exc}") from exc

    async def delete_row(self, sheet: str, row_index: int) -> None:
        if row_index <= 0:
            raise SheetsError("Row index must be 1-based.")
        sheet_id = await self._sheet_id(sheet)
        try:
            self._get_service().spreadsheets().batchUpdate(
                spreadsheetId=self._spreadsheet_id,
                body={"requests": [{
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_id,
                            "dimension": "ROWS",
                            "startIndex": row_index - 1,  # 0-based, end exclusive
                            "endIndex": row_index,
                        },
                    },
                }]},
            ).execute()
        except Exception as exc:
            logger.error("Error deleting row %d from %s: %s", row_index, sheet, exc)
            raise SheetsError(f"Failed to delete row {row_index} of '{sheet}': {exc}") from exc

    async def clear_and_keep_header(self, sheet: str, header: list[str]) -> None:
        try:
            self._values().clear(spreadsheetId=self._spreadsheet_id, range=_a1(sheet), body={}).execute()
            self._values().update(
                spreadsheetId=self._spreadsheet_id,
                range=_a1(sheet, "A1"),
                valueInputOption="USER_ENTERED",
                body={"values": [header]},
            ).execute()
        except Exception as exc:
            logger.error("Error clearing sheet %s: %s", sheet, exc)
            raise SheetsError(f"Failed to clear '{sheet}': {exc}") from exc
        logger.info("Sheet %s cleared, header kept", sheet)

    async def write_rows(self, sheet: str, start_row: int, rows: list[list[Any]]) -> None:
        if not rows:
            raise SheetsError("No data provided to write.")
        try:
            self._values().update(
                spreadsheetId=self._spreadsheet_id,
                range=_a1(sheet, f"A{start_row}"),
                valueInputOption="USER_ENTERED",
                body={"values": rows},
            ).execute()
        except Exception as exc:
            logger.error("Error writing rows to %s from row %d: %s", sheet, start_row, exc)
            raise SheetsError(f"Failed to write rows to '{sheet}': {exc}") from exc
