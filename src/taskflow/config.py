# src/taskflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKFLOW"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Front-ends ----
    console_enabled: bool
    scheduler_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Sweep cadence / policy ----
    recurrence_interval_seconds: float
    high_priority_interval_seconds: float
    overdue_hour: int
    overdue_tz: str
    high_priority_window_minutes: int
    due_soon_window_hours: int
    notify_timeout_seconds: float

    # ---- Email (SMTP) ----
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_password: str
    smtp_from: str

    # ---- Push (Matrix) ----
    matrix_enabled: bool
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_store_path: Path

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host)

    @staticmethod
    def from_env() -> Settings:
        _load_dotenv_if_available()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskflow"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "taskflow") or "taskflow",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            scheduler_enabled=_env_bool(_k("SCHEDULER_ENABLED"), True),
            data_dir=data_dir,
            db_path=_env_path(_k("DB_PATH"), data_dir / "taskflow.sqlite3"),
            recurrence_interval_seconds=_env_float(_k("RECURRENCE_INTERVAL_SECONDS"), 300.0),
            high_priority_interval_seconds=_env_float(_k("HIGH_PRIORITY_INTERVAL_SECONDS"), 300.0),
            overdue_hour=min(23, max(0, _env_int(_k("OVERDUE_HOUR"), 9))),
            overdue_tz=_env(_k("OVERDUE_TZ"), "").strip(),
            high_priority_window_minutes=_env_int(_k("HIGH_PRIORITY_WINDOW_MINUTES"), 60),
            due_soon_window_hours=_env_int(_k("DUE_SOON_WINDOW_HOURS"), 24),
            notify_timeout_seconds=_env_float(_k("NOTIFY_TIMEOUT_SECONDS"), 10.0),
            smtp_host=_env(_k("SMTP_HOST"), "").strip(),
            smtp_port=_env_int(_k("SMTP_PORT"), 465),
            smtp_username=_env(_k("SMTP_USERNAME"), "").strip(),
            smtp_password=_env(_k("SMTP_PASSWORD"), ""),
            smtp_from=_env(_k("SMTP_FROM"), "").strip(),
            matrix_enabled=_env_bool(_k("MATRIX_ENABLED"), False),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER"), "").strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID"), "").strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD"), "").strip(),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store"),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
