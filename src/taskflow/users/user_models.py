# src/taskflow/users/user_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class User:
    id: int
    name: str
    email: str
    password_hash: str
    push_token: str | None = None
    created_at: datetime | None = None

    def __repr__(self) -> str:
        # password_hash stays out of logs
        return f"User(id={self.id!r}, name={self.name!r}, email={self.email!r})"
