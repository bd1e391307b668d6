"""Tests for src.adapters.google_sheets — Google Sheets API v4 adapter.

All Google API calls are mocked.
"""

from unittest.mock import MagicMock, patch

import pytest

from src.adapters.google_sheets import (
    GoogleSheetsAdapter,
    _a1,
    column_letter,
    extract_spreadsheet_id,
)
from src.ports.sheets_port import SheetsError

SPREADSHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"

# Patch path: get_sheets_service_for_token is imported inside _get_service()
_PATCH_SVC = "src.integrations.google_auth.get_sheets_service_for_token"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_service(rows=None, sheets=None, title="My Tasks"):
    """Create a mock Google Sheets service."""
    service = MagicMock()
    spreadsheets = service.spreadsheets.return_value
    values = spreadsheets.values.return_value

    values.get.return_value.execute.return_value = {"values": rows} if rows is not None else {}
    sheet_list = [
        {"properties": {"title": name, "sheetId": sheet_id}}
        for name, sheet_id in (sheets or {}).items()
    ]
    spreadsheets.get.return_value.execute.return_value = {
        "properties": {"title": title},
        "sheets": sheet_list,
    }
    return service


def _values(service):
    return service.spreadsheets.return_value.values.return_value


# ---------------------------------------------------------------------------
# Helpers under test
# ---------------------------------------------------------------------------


class TestExtractSpreadsheetId:
    def test_full_url(self):
        url = f"https://docs.google.com/spreadsheets/d/{SPREADSHEET_ID}/edit#gid=0"
        assert extract_spreadsheet_id(url) == SPREADSHEET_ID

    def test_bare_id(self):
        assert extract_spreadsheet_id(f"  {SPREADSHEET_ID} ") == SPREADSHEET_ID

    def test_garbage(self):
        assert extract_spreadsheet_id("not a sheet") is None
        assert extract_spreadsheet_id("") is None
        assert extract_spreadsheet_id("short") is None


class TestA1Notation:
    def test_column_letters(self):
        assert column_letter(1) == "A"
        assert column_letter(9) == "I"
        assert column_letter(26) == "Z"
        assert column_letter(27) == "AA"
        assert column_letter(52) == "AZ"

    def test_sheet_name_quoted(self):
        assert _a1("Active List") == "'Active List'"
        assert _a1("Active List", "A2") == "'Active List'!A2"
        assert _a1("Bob's", "A1") == "'Bob''s'!A1"


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class TestGetService:
    @pytest.mark.asyncio
    async def test_no_token_raises(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID)
        with pytest.raises(SheetsError, match="not authorized"):
            await adapter.get_all_rows("Active List")

    @pytest.mark.asyncio
    async def test_builds_service_from_token(self):
        service = _mock_service(rows=[["Task ID"]])
        with patch(_PATCH_SVC, return_value=service) as build:
            adapter = GoogleSheetsAdapter(SPREADSHEET_ID, token_json='{"token": "x"}')
            await adapter.get_all_rows("Active List")
            await adapter.get_all_rows("Active List")
        build.assert_called_once_with('{"token": "x"}')


class TestReadWrite:
    @pytest.mark.asyncio
    async def test_get_all_rows(self):
        service = _mock_service(rows=[["Task ID", "Title"], ["t1", "A"]])
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        assert await adapter.get_all_rows("Active List") == [["Task ID", "Title"], ["t1", "A"]]
        _values(service).get.assert_called_once_with(spreadsheetId=SPREADSHEET_ID, range="'Active List'")

    @pytest.mark.asyncio
    async def test_get_all_rows_empty_sheet(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=_mock_service())
        assert await adapter.get_all_rows("Active List") == []

    @pytest.mark.asyncio
    async def test_append_row(self):
        service = _mock_service()
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        await adapter.append_row("Deleted", ["t1", "A"])
        kwargs = _values(service).append.call_args.kwargs
        assert kwargs["range"] == "'Deleted'"
        assert kwargs["valueInputOption"] == "USER_ENTERED"
        assert kwargs["insertDataOption"] == "INSERT_ROWS"
        assert kwargs["body"] == {"values": [["t1", "A"]]}

    @pytest.mark.asyncio
    async def test_overwrite_row_range(self):
        service = _mock_service()
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        await adapter.overwrite_row("Active List", 5, list(range(9)))
        assert _values(service).update.call_args.kwargs["range"] == "'Active List'!A5:I5"

    @pytest.mark.asyncio
    async def test_overwrite_row_rejects_zero(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=_mock_service())
        with pytest.raises(SheetsError):
            await adapter.overwrite_row("Active List", 0, ["x"])

    @pytest.mark.asyncio
    async def test_delete_row_uses_sheet_gid(self):
        service = _mock_service(sheets={"Active List": 777})
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        await adapter.delete_row("Active List", 3)
        body = service.spreadsheets.return_value.batchUpdate.call_args.kwargs["body"]
        dim = body["requests"][0]["deleteDimension"]["range"]
        assert dim == {"sheetId": 777, "dimension": "ROWS", "startIndex": 2, "endIndex": 3}

    @pytest.mark.asyncio
    async def test_delete_row_unknown_sheet(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=_mock_service(sheets={}))
        with pytest.raises(SheetsError, match="not found"):
            await adapter.delete_row("Active List", 2)

    @pytest.mark.asyncio
    async def test_clear_and_keep_header(self):
        service = _mock_service()
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        await adapter.clear_and_keep_header("Active List", ["Task ID", "Title"])
        _values(service).clear.assert_called_once()
        kwargs = _values(service).update.call_args.kwargs
        assert kwargs["range"] == "'Active List'!A1"
        assert kwargs["body"] == {"values": [["Task ID", "Title"]]}

    @pytest.mark.asyncio
    async def test_write_rows(self):
        service = _mock_service()
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        await adapter.write_rows("Active List", 2, [["a"], ["b"]])
        kwargs = _values(service).update.call_args.kwargs
        assert kwargs["range"] == "'Active List'!A2"
        assert kwargs["body"] == {"values": [["a"], ["b"]]}

    @pytest.mark.asyncio
    async def test_write_rows_requires_data(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=_mock_service())
        with pytest.raises(SheetsError):
            await adapter.write_rows("Active List", 2, [])

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        service = _mock_service()
        _values(service).append.return_value.execute.side_effect = Exception("HTTP 500")
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        with pytest.raises(SheetsError, match="HTTP 500"):
            await adapter.append_row("Active List", ["x"])


class TestSpreadsheetSetup:
    @pytest.mark.asyncio
    async def test_title(self):
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=_mock_service(title="Planner"))
        assert await adapter.get_spreadsheet_title() == "Planner"

    @pytest.mark.asyncio
    async def test_existing_sheets_not_recreated(self):
        service = _mock_service(sheets={"Active List": 1, "Deleted": 2})
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        ids = await adapter.ensure_sheets_exist({"Active List": ["Task ID"], "Deleted": ["Task ID"]})
        assert ids == {"Active List": 1, "Deleted": 2}
        service.spreadsheets.return_value.batchUpdate.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_sheet_created_with_header(self):
        service = _mock_service()
        spreadsheets = service.spreadsheets.return_value
        spreadsheets.get.return_value.execute.side_effect = [
            {"sheets": [{"properties": {"title": "Active List", "sheetId": 1}}]},
            {"sheets": [
                {"properties": {"title": "Active List", "sheetId": 1}},
                {"properties": {"title": "Deleted", "sheetId": 9}},
            ]},
        ]
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)

        ids = await adapter.ensure_sheets_exist({"Active List": ["Task ID"], "Deleted": ["Task ID", "Date Deleted"]})

        assert ids == {"Active List": 1, "Deleted": 9}
        requests = spreadsheets.batchUpdate.call_args.kwargs["body"]["requests"]
        assert requests == [{"addSheet": {"properties": {"title": "Deleted"}}}]
        header_call = _values(service).update.call_args.kwargs
        assert header_call["range"] == "'Deleted'!A1"
        assert header_call["body"] == {"values": [["Task ID", "Date Deleted"]]}

    @pytest.mark.asyncio
    async def test_permission_denied_message(self):
        service = _mock_service()
        service.spreadsheets.return_value.get.return_value.execute.side_effect = Exception("HttpError 403")
        adapter = GoogleSheetsAdapter(SPREADSHEET_ID, service=service)
        with pytest.raises(SheetsError, match="Permission denied"):
            await adapter.ensure_sheets_exist({"Active List": ["Task ID"]})
