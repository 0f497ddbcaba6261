# src/taskflow/tasks/notification_policy.py

from __future__ import annotations

"""
Reminder policy.

Given a task snapshot and the current time, decide which reminder (if any)
applies and through which channels it is delivered.

Eligibility: only Pending tasks whose notified flag is still False.

Rules, first match wins:
- HIGH_PRIORITY: priority High and due_at in [now, now + 1h] -> push + email
- DUE_SOON:      due_at in [now, now + 24h]                 -> informational only
- OVERDUE:       due_at <= now                                -> email

HIGH_PRIORITY is tested before DUE_SOON because its window lies entirely
inside the due-soon window. DUE_SOON never sets the notified flag.

There is a single notified flag for all reminder kinds: a task that already
got its high-priority reminder will not get an overdue email later for the
same due date.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from .task_models import Priority, Task, TaskStatus, utc

DEFAULT_DUE_SOON_WINDOW = timedelta(hours=24)
DEFAULT_HIGH_PRIORITY_WINDOW = timedelta(hours=1)


class NotificationDecision(str, Enum):
    NONE = "none"
    DUE_SOON = "due_soon"
    HIGH_PRIORITY = "high_priority"
    OVERDUE = "overdue"


class Channel(str, Enum):
    PUSH = "push"
    EMAIL = "email"


_CHANNELS: dict[NotificationDecision, tuple[Channel, ...]] = {
    NotificationDecision.NONE: (),
    NotificationDecision.DUE_SOON: (),
    NotificationDecision.HIGH_PRIORITY: (Channel.PUSH, Channel.EMAIL),
    NotificationDecision.OVERDUE: (Channel.EMAIL,),
}


@dataclass(slots=True, frozen=True)
class NotificationPolicy:
    due_soon_window: timedelta = DEFAULT_DUE_SOON_WINDOW
    high_priority_window: timedelta = DEFAULT_HIGH_PRIORITY_WINDOW

    @staticmethod
    def is_eligible(task: Task) -> bool:
        return task.status == TaskStatus.PENDING and not task.notified

    def is_high_priority_due(self, task: Task, now: datetime) -> bool:
        due = utc(task.due_at)
        now = utc(now)
        return task.priority == Priority.HIGH and now <= due <= now + self.high_priority_window

    def is_due_soon(self, task: Task, now: datetime) -> bool:
        due = utc(task.due_at)
        now = utc(now)
        return now <= due <= now + self.due_soon_window

    @staticmethod
    def is_overdue(task: Task, now: datetime) -> bool:
        return utc(task.due_at) <= utc(now)

    def classify(self, task: Task, now: datetime) -> NotificationDecision:
        if not self.is_eligible(task):
            return NotificationDecision.NONE
        if self.is_high_priority_due(task, now):
            return NotificationDecision.HIGH_PRIORITY
        if self.is_due_soon(task, now):
            return NotificationDecision.DUE_SOON
        if self.is_overdue(task, now):
            return NotificationDecision.OVERDUE
        return NotificationDecision.NONE


def channels_for(decision: NotificationDecision) -> tuple[Channel, ...]:
    return _CHANNELS[decision]


def marks_notified(decision: NotificationDecision) -> bool:
    return decision in (NotificationDecision.HIGH_PRIORITY, NotificationDecision.OVERDUE)


DEFAULT_POLICY = NotificationPolicy()


def classify(task: Task, now: datetime) -> NotificationDecision:
    """classify() with the default windows (24h due-soon, 1h high-priority)."""
    return DEFAULT_POLICY.classify(task, now)
