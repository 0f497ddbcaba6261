# src/taskflow/tasks/dependencies.py

"""
Dependency gate.

Only direct dependencies are checked, by their current stored status.
No transitive closure and no cycle detection: a cycle simply means none of
its members can be completed first.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..core.ports import TaskRepo
from ..errors import PolicyViolation
from .task_models import Task, TaskQuery, TaskStatus

logger = logging.getLogger(__name__)

DependencySnapshots = Mapping[int, Task | None]


def fetch_dependency_snapshots(repo: TaskRepo, task: Task) -> dict[int, Task | None]:
    """
    Batch-fetch the current records of task's direct dependencies.

    Ids that no longer resolve map to None.
    """
    dep_ids = tuple(dict.fromkeys(int(d) for d in task.dependencies))
    if not dep_ids:
        return {}
    found = {t.id: t for t in repo.find(TaskQuery(ids=dep_ids))}
    return {dep_id: found.get(dep_id) for dep_id in dep_ids}


def unsatisfied_dependencies(task: Task, snapshots: DependencySnapshots) -> list[int]:
    blocking: list[int] = []
    for dep_id in task.dependencies:
        dep = snapshots.get(dep_id)
        # Missing dependency records fail closed.
        if dep is None or dep.status != TaskStatus.COMPLETED:
            if dep_id not in blocking:
                blocking.append(dep_id)
    return blocking


def can_complete(task: Task, snapshots: DependencySnapshots) -> bool:
    return not unsatisfied_dependencies(task, snapshots)


def ensure_can_complete(task: Task, snapshots: DependencySnapshots) -> None:
    blocking = unsatisfied_dependencies(task, snapshots)
    if blocking:
        logger.info("Completion blocked task_id=%s blocking=%s", task.id, blocking)
        raise PolicyViolation(
            "Cannot mark task as completed until all dependent tasks are finished.",
            blocking=blocking,
        )
