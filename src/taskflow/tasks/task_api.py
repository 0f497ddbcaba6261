# src/taskflow/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..core.ports import Clock, TaskRepo
from ..errors import Forbidden, NotFound, ValidationError
from .dependencies import ensure_can_complete, fetch_dependency_snapshots
from .notification_policy import DEFAULT_POLICY, NotificationPolicy
from .task_models import Category, Priority, Recurrence, Task, TaskQuery, TaskStatus, utc

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(
    {"title", "description", "priority", "due_at", "category", "status", "recurrence", "dependencies", "progress"}
)


@dataclass(slots=True, frozen=True)
class TaskStats:
    by_category: dict[str, int]
    total: int
    completed: int
    completion_rate: float
    upcoming: list[Task]
    overdue: list[Task]


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    return title


def _clean_dependencies(deps: Iterable[Any] | None, *, self_id: int | None = None) -> list[int]:
    out: list[int] = []
    for d in deps or ():
        try:
            dep_id = int(d)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid dependency id: {d!r}") from e
        if self_id is not None and dep_id == self_id:
            raise ValidationError("a task cannot depend on itself")
        if dep_id not in out:
            out.append(dep_id)
    return out


def _clean_progress(progress: Any) -> float | None:
    if progress is None:
        return None
    try:
        value = float(progress)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid progress: {progress!r}") from e
    if not 0.0 <= value <= 100.0:
        raise ValidationError("progress must be between 0 and 100")
    return value


class TaskService:
    """
    Request-side task operations.

    Every operation takes the caller's user id; mutations load the task first
    and check ownership (NotFound / Forbidden) before touching anything.
    """

    def __init__(self, task_repo: TaskRepo, clock: Clock, *, policy: NotificationPolicy = DEFAULT_POLICY) -> None:
        self._repo = task_repo
        self._clock = clock
        self._policy = policy

    # ---- helpers ----

    def _load_owned(self, caller_id: int, task_id: int) -> Task:
        task = self._repo.find_one(task_id)
        if task is None:
            raise NotFound("task", task_id)
        if task.owner_id != caller_id:
            logger.warning("Forbidden: user=%s tried to modify task=%s", caller_id, task_id)
            raise Forbidden()
        return task

    def _owned_dependencies(self, caller_id: int, deps: list[int]) -> list[int]:
        """Dependencies may only name the caller's own existing tasks."""
        if not deps:
            return deps
        owned = {t.id for t in self._repo.find(TaskQuery(owner_id=caller_id, ids=tuple(deps)))}
        foreign = [d for d in deps if d not in owned]
        if foreign:
            raise ValidationError(f"unknown dependency task(s): {', '.join(f'#{d}' for d in foreign)}")
        return deps

    def _apply_status(self, task: Task, status: TaskStatus) -> Task:
        if status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
            ensure_can_complete(task, fetch_dependency_snapshots(self._repo, task))
        return replace(task, status=status)

    # ---- CRUD ----

    def create_task(
        self,
        owner_id: int,
        *,
        title: str,
        due_at: datetime,
        category: Category | str,
        description: str | None = None,
        priority: Priority | str | None = None,
        recurrence: Recurrence | str | None = None,
        dependencies: Iterable[Any] | None = None,
    ) -> Task:
        if due_at is None:
            raise ValidationError("due date is required")

        task = Task(
            owner_id=int(owner_id),
            title=_clean_title(title),
            description=(description or "").strip() or None,
            priority=Priority.parse(priority, default=Priority.MEDIUM),
            due_at=utc(due_at),
            category=Category.parse(category),
            recurrence=Recurrence.parse(recurrence, default=Recurrence.NONE),
            dependencies=self._owned_dependencies(int(owner_id), _clean_dependencies(dependencies)),
        )
        saved = self._repo.save(task)
        logger.info("Task created id=%s owner=%s", saved.id, owner_id)
        return saved

    def get_task(self, caller_id: int, task_id: int) -> Task:
        task = self._repo.find_one(task_id)
        if task is None:
            raise NotFound("task", task_id)
        if task.owner_id != caller_id:
            raise Forbidden("Not authorized to view this task")
        return task

    def list_tasks(
        self,
        caller_id: int,
        *,
        priority: Priority | str | None = None,
        category: Category | str | None = None,
        status: TaskStatus | str | None = None,
        due_before: datetime | None = None,
    ) -> list[Task]:
        query = TaskQuery(
            owner_id=caller_id,
            priority=Priority.parse(priority) if priority else None,
            category=Category.parse(category) if category else None,
            status=TaskStatus.parse(status) if status else None,
            due_to=utc(due_before) if due_before is not None else None,
        )
        return self._repo.find(query)

    def update_task(self, caller_id: int, task_id: int, **fields: Any) -> Task:
        """
        Edit fields of an owned task.

        A status in the update goes through the dependency gate. Editing
        due_at does not touch the notified flag.
        """
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update field(s): {', '.join(sorted(unknown))}")

        task = self._load_owned(caller_id, task_id)
        changes: dict[str, Any] = {}

        if "title" in fields:
            changes["title"] = _clean_title(fields["title"])
        if "description" in fields:
            changes["description"] = (fields["description"] or "").strip() or None
        if "priority" in fields:
            changes["priority"] = Priority.parse(fields["priority"])
        if "due_at" in fields:
            if fields["due_at"] is None:
                raise ValidationError("due date is required")
            changes["due_at"] = utc(fields["due_at"])
        if "category" in fields:
            changes["category"] = Category.parse(fields["category"])
        if "recurrence" in fields:
            changes["recurrence"] = Recurrence.parse(fields["recurrence"], default=Recurrence.NONE)
        if "dependencies" in fields:
            changes["dependencies"] = self._owned_dependencies(
                caller_id, _clean_dependencies(fields["dependencies"], self_id=task.id)
            )
        if "progress" in fields:
            changes["progress"] = _clean_progress(fields["progress"])

        updated = replace(task, **changes)
        if "status" in fields:
            updated = self._apply_status(updated, TaskStatus.parse(fields["status"]))

        saved = self._repo.save(updated)
        logger.info("Task updated id=%s fields=%s", task_id, sorted(fields))
        return saved

    def change_status(self, caller_id: int, task_id: int, status: TaskStatus | str) -> Task:
        task = self._load_owned(caller_id, task_id)
        updated = self._apply_status(task, TaskStatus.parse(status))
        saved = self._repo.save(updated)
        logger.info("Task status id=%s %s -> %s", task_id, task.status.value, saved.status.value)
        return saved

    def update_progress(self, caller_id: int, task_id: int, progress: Any) -> Task:
        task = self._load_owned(caller_id, task_id)
        return self._repo.save(replace(task, progress=_clean_progress(progress)))

    def delete_task(self, caller_id: int, task_id: int) -> None:
        self._load_owned(caller_id, task_id)
        self._repo.delete_one(task_id)
        logger.info("Task deleted id=%s owner=%s", task_id, caller_id)

    # ---- informational listings ----

    def due_soon(self, caller_id: int) -> list[Task]:
        """Pending, not yet notified, due within the due-soon window."""
        now = self._clock.now()
        return self._repo.find(
            TaskQuery(
                owner_id=caller_id,
                status=TaskStatus.PENDING,
                notified=False,
                due_from=now,
                due_to=now + self._policy.due_soon_window,
            )
        )

    def overdue(self, caller_id: int) -> list[Task]:
        now = self._clock.now()
        return self._repo.find(TaskQuery(owner_id=caller_id, status=TaskStatus.PENDING, due_to=now))

    def stats(self, caller_id: int) -> TaskStats:
        now = self._clock.now()
        by_category = {c.value: self._repo.count(TaskQuery(owner_id=caller_id, category=c)) for c in Category}
        total = self._repo.count(TaskQuery(owner_id=caller_id))
        completed = self._repo.count(TaskQuery(owner_id=caller_id, status=TaskStatus.COMPLETED))
        return TaskStats(
            by_category={k: v for k, v in by_category.items() if v},
            total=total,
            completed=completed,
            completion_rate=(completed / total * 100.0) if total else 0.0,
            upcoming=self._repo.find(TaskQuery(owner_id=caller_id, status=TaskStatus.PENDING, due_from=now)),
            overdue=self.overdue(caller_id),
        )
