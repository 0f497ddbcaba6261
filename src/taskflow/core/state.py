# src/taskflow/core/state.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from ..tasks.task_api import TaskService
from ..tasks.task_scheduler import SweepScheduler
from ..tasks.task_store import TaskStore
from ..users.user_store import UserStore
from .ports import Clock, Notifier


@dataclass
class AppState:
    """Everything the front-ends need, wired once in cli.bootstrap."""

    settings: Any
    clock: Clock
    task_store: TaskStore
    user_store: UserStore
    tasks: TaskService
    notifier: Notifier
    scheduler: SweepScheduler

    # Console session identity (the console acts on behalf of one user).
    current_user_id: int | None = None

    # Loop the scheduler runs on (set when started in the background);
    # one-off sweeps from the console are submitted to it.
    scheduler_loop: asyncio.AbstractEventLoop | None = None
