# src/taskflow/tasks/recurrence.py

from __future__ import annotations

import calendar
from dataclasses import replace
from datetime import datetime, timedelta

from ..errors import InvalidState
from .task_models import Recurrence, Task, TaskStatus, utc


def add_months(dt: datetime, months: int) -> datetime:
    """
    Calendar month arithmetic.

    Day-of-month overflow clamps to the last day of the target month:
    Jan 31 + 1 month -> Feb 28 (Feb 29 in leap years), Mar 31 -> Apr 30.
    Time of day and tzinfo are preserved.
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def advance_due(due_at: datetime, recurrence: Recurrence) -> datetime:
    """Add exactly one recurrence period to due_at."""
    if recurrence == Recurrence.DAILY:
        return due_at + timedelta(days=1)
    if recurrence == Recurrence.WEEKLY:
        return due_at + timedelta(days=7)
    if recurrence == Recurrence.MONTHLY:
        return add_months(due_at, 1)
    raise InvalidState(f"recurrence {recurrence!r} has no period")


def next_occurrence(task: Task, as_of: datetime) -> Task:
    """
    Return the reset copy of a completed recurring task.

    The new due date is one period after the existing due date (not after
    as_of). status -> Pending, notified -> False.
    """
    if not task.is_recurring:
        raise InvalidState(f"task {task.id} is not recurring")
    if task.status != TaskStatus.COMPLETED:
        raise InvalidState(f"task {task.id} is {task.status.value}, expected Completed")

    return replace(
        task,
        status=TaskStatus.PENDING,
        due_at=advance_due(task.due_at, task.recurrence),
        notified=False,
        updated_at=utc(as_of),
    )


def reset_if_due(task: Task, as_of: datetime) -> Task | None:
    """
    One increment per evaluation: the reset is returned only when the single
    advanced due date already lies at or before as_of.
    """
    candidate = next_occurrence(task, as_of)
    if utc(candidate.due_at) <= utc(as_of):
        return candidate
    return None
