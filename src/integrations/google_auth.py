"""
TaskGrid Assistant — Google Sheets Authentication.

Enables access to the spreadsheet that mirrors the task list. Without auth
the assistant still works; it just stays local-only.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def load_stored_token() -> str | None:
    """Return the saved token JSON, refreshed if needed, or None when there is none.

    Never starts an interactive consent flow.
    """
    from src.config import settings

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    if not token_path.exists():
        logger.info("No Google token at %s", token_path)
        return None

    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            token_path.write_text(creds.to_json())
            logger.info("Token refreshed successfully")
        except Exception as exc:
            logger.warning("Token refresh failed (%s)", exc)
            return None
    if not creds.valid:
        return None
    return creds.to_json()


def run_consent_flow() -> str:
    """Run the interactive OAuth2 consent flow and persist the token.

    Flow:
    1. Read the OAuth client secrets from GOOGLE_CREDENTIALS_PATH.
    2. Open the browser consent page on a local port.
    3. Save the resulting token to GOOGLE_TOKEN_PATH.
    """
    from src.config import settings

    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_path}. "
            "Download it from the Google Cloud Console."
        )

    flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), SCOPES)
    creds = flow.run_local_server(port=0)
    logger.info("New credentials obtained via OAuth2 consent flow")

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.debug("Token saved to %s", token_path)
    return creds.to_json()


def get_sheets_service_for_token(token_json: str):
    """Build a Google Sheets API v4 service from stored credentials.

    Refreshes the token if expired.
    """
    creds = Credentials.from_authorized_user_info(json.loads(token_json), SCOPES)
    if creds.expired and creds.refresh_token:
        creds.refresh(Request())
    return build("sheets", "v4", credentials=creds, cache_discovery=False)
