# src/taskflow/notify/messages.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.notification_policy import NotificationDecision
from ..tasks.task_models import Task


@dataclass(slots=True, frozen=True)
class Reminder:
    push_title: str
    push_body: str
    email_subject: str
    email_body: str


def build_reminder(decision: NotificationDecision, task: Task) -> Reminder | None:
    title = (task.title or "").strip() or f"#{task.id}"

    if decision == NotificationDecision.HIGH_PRIORITY:
        return Reminder(
            push_title="Task Reminder",
            push_body=f'Task "{title}" is due soon.',
            email_subject="Task Reminder",
            email_body=f'Task "{title}" is due in one hour. Make sure to complete it on time.',
        )

    if decision == NotificationDecision.OVERDUE:
        return Reminder(
            push_title="Overdue Task",
            push_body=f'Task "{title}" is overdue.',
            email_subject="Overdue Task Reminder",
            email_body=f'Task "{title}" is overdue. Please complete it as soon as possible.',
        )

    return None
