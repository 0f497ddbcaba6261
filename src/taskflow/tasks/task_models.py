# src/taskflow/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from ..errors import ValidationError


class _ParsedEnum(StrEnum):
    @classmethod
    def parse(cls, raw: str | _ParsedEnum | None, *, default: _ParsedEnum | None = None):
        """Case-insensitive lookup used for user input. Raises ValidationError."""
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            if default is not None:
                return default
            raise ValidationError(f"{cls.__name__} is required")
        if isinstance(raw, cls):
            return raw
        wanted = str(raw).strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise ValidationError(f"Invalid {cls.__name__} {raw!r} (allowed: {allowed})")


class TaskStatus(_ParsedEnum):
    PENDING = "Pending"
    COMPLETED = "Completed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class Priority(_ParsedEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Category(_ParsedEnum):
    WORK = "Work"
    PERSONAL = "Personal"
    URGENT = "Urgent"


class Recurrence(_ParsedEnum):
    NONE = "None"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


def utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


@dataclass(slots=True)
class Task:
    owner_id: int
    title: str
    due_at: datetime
    category: Category

    id: int | None = None
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    dependencies: list[int] = field(default_factory=list)
    recurrence: Recurrence = Recurrence.NONE
    notified: bool = False
    progress: float | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE


@dataclass(slots=True, frozen=True)
class TaskQuery:
    """
    Predicate for TaskRepo.find(). Every field left as None is unconstrained.

    due_from / due_to are inclusive bounds on due_at.
    recurring=True selects recurrence != None.
    """

    owner_id: int | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    category: Category | None = None
    notified: bool | None = None
    recurring: bool | None = None
    due_from: datetime | None = None
    due_to: datetime | None = None
    ids: tuple[int, ...] | None = None
    limit: int | None = None
