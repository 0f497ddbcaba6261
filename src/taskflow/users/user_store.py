# src/taskflow/users/user_store.py

from __future__ import annotations

import contextlib
import hashlib
import hmac
import logging
import re
import secrets
import sqlite3
import time
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

from ..errors import StoreUnavailable, ValidationError
from .user_models import User

logger = logging.getLogger(__name__)

_PBKDF2_ITERATIONS = 240_000
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_password(password: str) -> str:
    """Salted PBKDF2-HMAC-SHA256, stored as 'pbkdf2_sha256$iterations$salt$hash'."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), _PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, iterations, salt, stored = password_hash.split("$")
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("ascii"), int(iterations))
    return hmac.compare_digest(digest.hex(), stored)


class UserStore:
    """
    SQLite user store. Shares the database file with TaskStore.

    Registration/authentication here is deliberately minimal: the task core
    only needs to resolve an owner's email and push token.
    """

    def __init__(self, db_path: str | Path = "taskflow.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextlib.contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    push_token TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            conn.commit()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            push_token=row["push_token"],
            created_at=datetime.fromtimestamp(float(row["created_at"]), tz=UTC),
        )

    def add_user(self, *, name: str, email: str, password: str, push_token: str | None = None) -> User:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name:
            raise ValidationError("name is required")
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"invalid email: {email!r}")
        if not password:
            raise ValidationError("password is required")

        with self._conn() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO users(name, email, password_hash, push_token, created_at) VALUES (?, ?, ?, ?, ?)",
                    (name, email, hash_password(password), push_token or None, time.time()),
                )
            except sqlite3.IntegrityError as e:
                raise ValidationError("User already exists") from e
            conn.commit()
            user_id = int(cur.lastrowid or 0)

        logger.info("User registered id=%s", user_id)
        user = self.find_user(user_id)
        if user is None:
            raise StoreUnavailable(f"user {user_id} vanished after insert")
        return user

    def find_user(self, user_id: int) -> User | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (int(user_id),)).fetchone()
            return self._row_to_user(row) if row else None

    def find_user_by_email(self, email: str) -> User | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", ((email or "").strip().lower(),)
            ).fetchone()
            return self._row_to_user(row) if row else None

    def authenticate(self, email: str, password: str) -> User | None:
        user = self.find_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user

    def set_push_token(self, user_id: int, push_token: str | None) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE users SET push_token = ? WHERE id = ?", (push_token or None, int(user_id)))
            conn.commit()
