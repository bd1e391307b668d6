"""Sheets adapter factory — builds the tabular adapter for a spreadsheet."""

from __future__ import annotations

from src.ports.sheets_port import SheetsPort


def create_sheets_adapter(spreadsheet_id: str, token_json: str | None = None) -> SheetsPort:
    """Return the adapter for a spreadsheet.

    Args:
        spreadsheet_id: Target spreadsheet.
        token_json: Stored OAuth credentials. Passed to the adapter constructor.
    """
    if not spreadsheet_id:
        raise ValueError("spreadsheet_id is required")

    from src.adapters.google_sheets import GoogleSheetsAdapter

    return GoogleSheetsAdapter(spreadsheet_id, token_json=token_json)
