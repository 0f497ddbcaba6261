# src/taskflow/cli/console.py

from __future__ import annotations

import logging
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def run_console_loop(state: AppState) -> None:
    logger.info("Console started.")
    print(f"[{_ts_local()}] [CONSOLE] Use /help for commands, /register or /login to start, /exit to quit.\n")

    while True:
        try:
            line = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not line:
            continue

        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            reply = command_registry.handle(state, line)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {reply}")

    logger.info("Console finished.")
