# src/taskflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires stores, notifiers, the task service and the sweep scheduler into AppState.
"""

from __future__ import annotations

import logging
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import get_settings
from ..core.clock import SystemClock
from ..core.ports import Clock, Notifier
from ..core.state import AppState
from ..notify.composite import CompositeNotifier
from ..notify.console import ConsoleNotifier
from ..notify.email import SmtpEmailNotifier
from ..tasks.notification_policy import NotificationPolicy
from ..tasks.task_api import TaskService
from ..tasks.task_scheduler import SweepScheduler
from ..tasks.task_store import TaskStore
from ..users.user_store import UserStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.matrix_enabled:
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def overdue_zone(settings) -> tzinfo | None:
    """Configured IANA zone for the daily overdue pass; None means system local time."""
    name = (settings.overdue_tz or "").strip()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown overdue time zone: {name!r}") from e


def build_notifier(settings) -> Notifier:
    """Pick a concrete notifier per channel; unconfigured channels only log."""
    fallback = ConsoleNotifier()

    email: Notifier = fallback
    if settings.email_enabled:
        email = SmtpEmailNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_from,
        )
        logger.info("Email reminders via SMTP %s:%s", settings.smtp_host, settings.smtp_port)
    else:
        logger.info("SMTP not configured; email reminders are logged only.")

    push: Notifier = fallback
    if settings.matrix_enabled:
        # Imported lazily: matrix-nio is only needed when push is enabled.
        from ..notify.matrix_push import MatrixPushNotifier

        push = MatrixPushNotifier(
            homeserver=settings.matrix_homeserver,
            user_id=settings.matrix_user_id,
            password=settings.matrix_password,
            store_dir=settings.matrix_store_path,
        )
        logger.info("Push reminders via Matrix %s", settings.matrix_homeserver)
    else:
        logger.info("Matrix push disabled; push reminders are logged only.")

    return CompositeNotifier(push=push, email=email)


def create_initial_state(*, settings=None, clock: Clock | None = None, notifier: Notifier | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    settings/clock/notifier are injectable for tests; by default the process
    settings, the system clock and the configured notifiers are used.
    """
    if settings is None:
        settings = get_settings()
    if clock is None:
        clock = SystemClock()

    _ensure_local_dirs(settings)

    task_store = TaskStore(settings.db_path)
    user_store = UserStore(settings.db_path)
    if notifier is None:
        notifier = build_notifier(settings)

    policy = NotificationPolicy(
        due_soon_window=timedelta(hours=settings.due_soon_window_hours),
        high_priority_window=timedelta(minutes=settings.high_priority_window_minutes),
    )

    scheduler = SweepScheduler(
        task_store,
        user_store,
        notifier,
        clock,
        policy=policy,
        recurrence_interval_seconds=settings.recurrence_interval_seconds,
        high_priority_interval_seconds=settings.high_priority_interval_seconds,
        overdue_hour=settings.overdue_hour,
        overdue_tz=overdue_zone(settings),
        notify_timeout_seconds=settings.notify_timeout_seconds,
    )

    return AppState(
        settings=settings,
        clock=clock,
        task_store=task_store,
        user_store=user_store,
        tasks=TaskService(task_store, clock, policy=policy),
        notifier=notifier,
        scheduler=scheduler,
    )
