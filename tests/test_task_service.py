# tests/test_task_service.py

from __future__ import annotations

from datetime import timedelta

import pytest

from taskflow.errors import Forbidden, NotFound, PolicyViolation, ValidationError
from taskflow.tasks.task_models import Category, Priority, Recurrence, TaskStatus


def _create(service, owner, clock, **kw):
    kw.setdefault("title", "Task")
    kw.setdefault("due_at", clock.now() + timedelta(days=1))
    kw.setdefault("category", "Work")
    return service.create_task(owner.id, **kw)


def test_create_applies_defaults_and_validates(service, owner, clock) -> None:
    task = _create(service, owner, clock, title="  Plan sprint  ")
    assert task.title == "Plan sprint"
    assert task.priority == Priority.MEDIUM
    assert task.status == TaskStatus.PENDING
    assert task.recurrence == Recurrence.NONE
    assert task.category == Category.WORK
    assert task.notified is False

    with pytest.raises(ValidationError):
        _create(service, owner, clock, title="   ")
    with pytest.raises(ValidationError):
        _create(service, owner, clock, category="Hobby")
    with pytest.raises(ValidationError):
        _create(service, owner, clock, category=None)
    with pytest.raises(ValidationError):
        _create(service, owner, clock, priority="Critical")


def test_completion_without_dependencies_succeeds(service, owner, clock) -> None:
    task = _create(service, owner, clock)
    done = service.change_status(owner.id, task.id, "Completed")
    assert done.status == TaskStatus.COMPLETED


def test_dependency_gate_end_to_end(service, owner, clock) -> None:
    a = _create(service, owner, clock, title="A")
    b = _create(service, owner, clock, title="B", dependencies=[a.id])

    with pytest.raises(PolicyViolation):
        service.change_status(owner.id, b.id, TaskStatus.COMPLETED)
    assert service.get_task(owner.id, b.id).status == TaskStatus.PENDING

    service.change_status(owner.id, a.id, TaskStatus.COMPLETED)
    assert service.change_status(owner.id, b.id, TaskStatus.COMPLETED).status == TaskStatus.COMPLETED


def test_dependency_on_deleted_task_blocks_completion(service, owner, clock) -> None:
    a = _create(service, owner, clock, title="A")
    b = _create(service, owner, clock, title="B", dependencies=[a.id])
    service.delete_task(owner.id, a.id)

    with pytest.raises(PolicyViolation):
        service.change_status(owner.id, b.id, TaskStatus.COMPLETED)


def test_reopen_is_unrestricted(service, owner, clock) -> None:
    a = _create(service, owner, clock, title="A")
    b = _create(service, owner, clock, title="B", dependencies=[a.id])
    service.change_status(owner.id, a.id, TaskStatus.COMPLETED)
    service.change_status(owner.id, b.id, TaskStatus.COMPLETED)

    # Reopening A does not require anything, and leaves B completed.
    assert service.change_status(owner.id, a.id, TaskStatus.PENDING).status == TaskStatus.PENDING
    assert service.get_task(owner.id, b.id).status == TaskStatus.COMPLETED


def test_update_with_status_goes_through_the_gate(service, owner, clock) -> None:
    a = _create(service, owner, clock, title="A")
    b = _create(service, owner, clock, title="B", dependencies=[a.id])

    with pytest.raises(PolicyViolation):
        service.update_task(owner.id, b.id, title="B2", status="Completed")
    unchanged = service.get_task(owner.id, b.id)
    assert unchanged.title == "B"
    assert unchanged.status == TaskStatus.PENDING


def test_non_owner_is_forbidden_and_task_unchanged(service, owner, other_user, clock) -> None:
    task = _create(service, owner, clock, title="Mine")

    with pytest.raises(Forbidden):
        service.change_status(other_user.id, task.id, TaskStatus.COMPLETED)
    with pytest.raises(Forbidden):
        service.update_task(other_user.id, task.id, title="Hacked")
    with pytest.raises(Forbidden):
        service.update_progress(other_user.id, task.id, 50)
    with pytest.raises(Forbidden):
        service.delete_task(other_user.id, task.id)

    still = service.get_task(owner.id, task.id)
    assert still.title == "Mine"
    assert still.status == TaskStatus.PENDING
    assert still.progress is None


def test_missing_task_is_not_found(service, owner) -> None:
    with pytest.raises(NotFound):
        service.change_status(owner.id, 4242, TaskStatus.COMPLETED)
    with pytest.raises(NotFound):
        service.delete_task(owner.id, 4242)


def test_update_fields_and_progress(service, owner, clock) -> None:
    task = _create(service, owner, clock)
    new_due = clock.now() + timedelta(days=3)

    updated = service.update_task(owner.id, task.id, priority="high", due_at=new_due, description="details")
    assert updated.priority == Priority.HIGH
    assert updated.due_at == new_due
    assert updated.description == "details"

    assert service.update_progress(owner.id, task.id, "75").progress == 75.0
    with pytest.raises(ValidationError):
        service.update_progress(owner.id, task.id, 150)
    with pytest.raises(ValidationError):
        service.update_task(owner.id, task.id, owner_id=2)
    with pytest.raises(ValidationError):
        service.update_task(owner.id, task.id, dependencies=[task.id])


def test_due_soon_overdue_and_stats(service, owner, clock) -> None:
    now = clock.now()
    soon = _create(service, owner, clock, title="soon", due_at=now + timedelta(hours=3))
    _create(service, owner, clock, title="later", due_at=now + timedelta(days=3), category="Personal")
    late = _create(service, owner, clock, title="late", due_at=now - timedelta(hours=1))
    done = _create(service, owner, clock, title="done", due_at=now - timedelta(days=1), category="Urgent")
    service.change_status(owner.id, done.id, TaskStatus.COMPLETED)

    assert [t.id for t in service.due_soon(owner.id)] == [soon.id]
    assert [t.id for t in service.overdue(owner.id)] == [late.id]

    stats = service.stats(owner.id)
    assert stats.total == 4
    assert stats.completed == 1
    assert stats.completion_rate == pytest.approx(25.0)
    assert stats.by_category == {"Work": 2, "Personal": 1, "Urgent": 1}
    assert len(stats.upcoming) == 2
    assert [t.id for t in stats.overdue] == [late.id]


def test_listing_is_scoped_to_owner(service, owner, other_user, clock) -> None:
    _create(service, owner, clock, title="mine", priority="High")
    _create(service, other_user, clock, title="theirs")

    assert [t.title for t in service.list_tasks(owner.id)] == ["mine"]
    assert [t.title for t in service.list_tasks(owner.id, priority="High")] == ["mine"]
    assert service.list_tasks(owner.id, category="Urgent") == []


def test_dependencies_must_name_callers_own_tasks(service, owner, other_user, clock) -> None:
    theirs = _create(service, other_user, clock, title="theirs")
    mine = _create(service, owner, clock, title="mine")

    with pytest.raises(ValidationError):
        _create(service, owner, clock, title="peek", dependencies=[theirs.id])
    with pytest.raises(ValidationError):
        _create(service, owner, clock, title="ghost", dependencies=[4242])
    with pytest.raises(ValidationError):
        service.update_task(owner.id, mine.id, dependencies=[theirs.id])

    assert service.get_task(owner.id, mine.id).dependencies == []
    assert [t.title for t in service.list_tasks(owner.id)] == ["mine"]
