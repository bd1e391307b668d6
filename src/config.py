"""
TaskGrid Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # Key-value store (SQLite file holding the task collection)
    DATABASE_PATH: str = "data/tasks.db"

    # Google Sheets mirror
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"
    SPREADSHEET_ID: str = ""     # empty → sync stays off until /connect

    # Weekly grid — optional JSON file overriding the built-in time blocks
    TIME_BLOCKS_PATH: str = ""

    # Task defaults
    DEFAULT_ENERGY: str = "low"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("DEFAULT_ENERGY", mode="before")
    @classmethod
    def parse_energy(cls, v: str) -> str:
        value = (v or "low").strip().lower()
        if value not in ("low", "high"):
            raise ValueError(f"DEFAULT_ENERGY must be 'low' or 'high', got {v!r}")
        return value


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/tasks.db"),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        SPREADSHEET_ID=os.getenv("SPREADSHEET_ID", ""),
        TIME_BLOCKS_PATH=os.getenv("TIME_BLOCKS_PATH", ""),
        DEFAULT_ENERGY=os.getenv("DEFAULT_ENERGY", "low"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
