# src/taskflow/notify/console.py

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Log-only notifier used for demos and for channels that are not configured.

    Never fails: the reminder is written to the log and counts as delivered.
    """

    async def notify_push(self, token: str, title: str, body: str) -> None:
        logger.info("[push -> %s] %s: %s", token, title, body)

    async def notify_email(self, address: str, subject: str, body: str) -> None:
        logger.info("[email -> %s] %s: %s", address, subject, body)
