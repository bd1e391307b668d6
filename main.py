"""
TaskGrid Assistant — Entry Point.

`python main.py`       starts the Telegram bot.
`python main.py auth`  runs the one-time Google Sheets sign-in and saves the token.
"""

import argparse
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger("taskgrid")


def _run_auth() -> None:
    from src.integrations.google_auth import run_consent_flow

    run_consent_flow()
    logger.info("Google Sheets authorized. Use /connect <spreadsheet> in Telegram to start syncing.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="TaskGrid Assistant")
    parser.add_argument("command", nargs="?", choices=["bot", "auth"], default="bot")
    args = parser.parse_args()

    if args.command == "auth":
        _run_auth()
    else:
        from src.bot.telegram_bot import main

        main()
