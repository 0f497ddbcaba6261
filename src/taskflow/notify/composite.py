# src/taskflow/notify/composite.py

from __future__ import annotations

from ..core.ports import Notifier


class CompositeNotifier:
    """Routes each channel to its own notifier."""

    def __init__(self, *, push: Notifier, email: Notifier) -> None:
        self._push = push
        self._email = email

    async def notify_push(self, token: str, title: str, body: str) -> None:
        await self._push.notify_push(token, title, body)

    async def notify_email(self, address: str, subject: str, body: str) -> None:
        await self._email.notify_email(address, subject, body)

    async def close(self) -> None:
        for n in {id(self._push): self._push, id(self._email): self._email}.values():
            close = getattr(n, "close", None)
            if close is not None:
                await close()
