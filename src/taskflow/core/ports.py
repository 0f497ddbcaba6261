# src/taskflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/notification transports swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Protocol


class Clock(Protocol):
    """Injectable time source; returns timezone-aware UTC datetimes."""

    def now(self) -> datetime: ...


class Notifier(Protocol):
    """
    Outbound reminder delivery (best-effort).

    Implementations raise TransientDeliveryFailure when a message could not be
    delivered; callers decide whether to retry.
    """

    async def notify_push(self, token: str, title: str, body: str) -> None: ...

    async def notify_email(self, address: str, subject: str, body: str) -> None: ...


class TaskRepo(Protocol):
    # Record store surface consumed by the service and the scheduler.
    def find_one(self, task_id: int) -> Any | None: ...
    def find(self, query: Any) -> list[Any]: ...
    def save(self, task: Any) -> Any: ...
    def delete_one(self, task_id: int) -> bool: ...
    def count(self, query: Any) -> int: ...


class UserRepo(Protocol):
    def find_user(self, user_id: int) -> Any | None: ...
    def find_user_by_email(self, email: str) -> Any | None: ...
