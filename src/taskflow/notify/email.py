# src/taskflow/notify/email.py

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from ..errors import TransientDeliveryFailure

logger = logging.getLogger(__name__)


class SmtpEmailNotifier:
    """
    Email delivery over SMTP.

    Port 465 uses implicit TLS (SMTP_SSL); any other port connects in plain
    text and upgrades with STARTTLS. The blocking smtplib session runs in a
    worker thread.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 465,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not host:
            raise ValueError("SMTP host is required")
        self._host = host
        self._port = int(port)
        self._username = username or None
        self._password = password or None
        self._sender = sender or username or f"taskflow@{host}"
        self._timeout = float(timeout)

    def _build(self, address: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = address
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _send_sync(self, msg: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self._port == 465:
            with smtplib.SMTP_SSL(self._host, self._port, timeout=self._timeout, context=context) as server:
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(msg)
            return

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            server.starttls(context=context)
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(msg)

    async def notify_push(self, token: str, title: str, body: str) -> None:
        raise TransientDeliveryFailure("push", token, "email notifier cannot deliver push messages")

    async def notify_email(self, address: str, subject: str, body: str) -> None:
        msg = self._build(address, subject, body)
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Error sending email to %s: %r", address, e)
            raise TransientDeliveryFailure("email", address, repr(e)) from e
        logger.info("Email sent to %s", address)
