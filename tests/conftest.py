# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskflow.cli.bootstrap import create_initial_state
from taskflow.core.clock import FixedClock
from taskflow.core.state import AppState
from taskflow.tasks.task_api import TaskService
from taskflow.tasks.task_scheduler import SweepScheduler
from taskflow.tasks.task_store import TaskStore
from taskflow.users.user_models import User
from taskflow.users.user_store import UserStore

from .fakes import FakeNotifier

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "taskflow.sqlite3"


@pytest.fixture()
def task_store(db_path: Path) -> TaskStore:
    return TaskStore(db_path)


@pytest.fixture()
def user_store(db_path: Path) -> UserStore:
    return UserStore(db_path)


@pytest.fixture()
def service(task_store: TaskStore, clock: FixedClock) -> TaskService:
    return TaskService(task_store, clock)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def scheduler(task_store: TaskStore, user_store: UserStore, notifier: FakeNotifier, clock: FixedClock) -> SweepScheduler:
    return SweepScheduler(task_store, user_store, notifier, clock, notify_timeout_seconds=0.2)


@pytest.fixture()
def owner(user_store: UserStore) -> User:
    return user_store.add_user(
        name="Alice", email="alice@example.com", password="password123", push_token="!room:alice"
    )


@pytest.fixture()
def other_user(user_store: UserStore) -> User:
    return user_store.add_user(name="Mallory", email="mallory@example.com", password="hunter22")


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        db_path=tmp_path / "state.sqlite3",
        matrix_enabled=False,
        matrix_store_path=tmp_path / "matrix_store",
        email_enabled=False,
        recurrence_interval_seconds=300.0,
        high_priority_interval_seconds=300.0,
        overdue_hour=9,
        overdue_tz="",
        high_priority_window_minutes=60,
        due_soon_window_hours=24,
        notify_timeout_seconds=1.0,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FixedClock, notifier: FakeNotifier) -> AppState:
    """AppState wired with a real SQLite store, a fixed clock and a fake notifier."""
    return create_initial_state(settings=settings, clock=clock, notifier=notifier)
