# src/taskflow/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..errors import NotFound, StoreUnavailable
from .task_models import Category, Priority, Recurrence, Task, TaskQuery, TaskStatus, utc

logger = logging.getLogger(__name__)


def _to_ts(dt: datetime | None) -> float | None:
    return utc(dt).timestamp() if dt is not None else None


def _from_ts(ts: float | None) -> datetime | None:
    return datetime.fromtimestamp(float(ts), tz=UTC) if ts is not None else None


class TaskStore:
    """
    SQLite task store (last-write-wins record store).

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection, so the scheduler thread
      and the request path never share one
    """

    def __init__(self, db_path: str | Path = "taskflow.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count(TaskQuery())
        except StoreUnavailable:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self._db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as e:
            raise StoreUnavailable(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._conn() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'Medium',
                    due_at REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'Pending',
                    category TEXT NOT NULL,
                    dependencies TEXT NOT NULL DEFAULT '[]',
                    recurrence TEXT NOT NULL DEFAULT 'None',
                    notified INTEGER NOT NULL DEFAULT 0,
                    progress REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("dependencies", "TEXT NOT NULL DEFAULT '[]'")
            add_col("recurrence", "TEXT NOT NULL DEFAULT 'None'")
            add_col("notified", "INTEGER NOT NULL DEFAULT 0")
            add_col("progress", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status_due ON tasks(status, due_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id)")
            conn.commit()

    @staticmethod
    def _deps_to_str(deps: list[int]) -> str:
        return json.dumps([int(d) for d in deps])

    @staticmethod
    def _str_to_deps(s: str | None) -> list[int]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except json.JSONDecodeError:
            logger.warning("Corrupt dependencies column %r; treating as empty", s)
            return []
        return [int(v) for v in val] if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            owner_id=int(row["owner_id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            priority=Priority(row["priority"]) if row["priority"] else Priority.MEDIUM,
            due_at=_from_ts(row["due_at"]) or datetime.fromtimestamp(0, tz=UTC),
            status=TaskStatus.from_db(row["status"]),
            category=Category(row["category"]),
            dependencies=self._str_to_deps(row["dependencies"]),
            recurrence=Recurrence(row["recurrence"]) if row["recurrence"] else Recurrence.NONE,
            notified=bool(row["notified"]),
            progress=float(row["progress"]) if row["progress"] is not None else None,
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    @staticmethod
    def _where(query: TaskQuery) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if query.owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(int(query.owner_id))
        if query.status is not None:
            clauses.append("status = ?")
            params.append(query.status.value)
        if query.priority is not None:
            clauses.append("priority = ?")
            params.append(query.priority.value)
        if query.category is not None:
            clauses.append("category = ?")
            params.append(query.category.value)
        if query.notified is not None:
            clauses.append("notified = ?")
            params.append(1 if query.notified else 0)
        if query.recurring is not None:
            clauses.append("recurrence != 'None'" if query.recurring else "recurrence = 'None'")
        if query.due_from is not None:
            clauses.append("due_at >= ?")
            params.append(_to_ts(query.due_from))
        if query.due_to is not None:
            clauses.append("due_at <= ?")
            params.append(_to_ts(query.due_to))
        if query.ids is not None:
            if not query.ids:
                clauses.append("0")
            else:
                clauses.append(f"id IN ({','.join('?' for _ in query.ids)})")
                params.extend(int(i) for i in query.ids)

        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params

    # ---- public API ----

    def count(self, query: TaskQuery) -> int:
        where, params = self._where(query)
        with self._conn() as conn:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM tasks{where}", params).fetchone()
            return int(n)

    def find_one(self, task_id: int) -> Task | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()
            return self._row_to_task(row) if row else None

    def find(self, query: TaskQuery) -> list[Task]:
        where, params = self._where(query)
        sql = f"SELECT * FROM tasks{where} ORDER BY due_at ASC, id ASC"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(int(query.limit))
        with self._conn() as conn:
            return [self._row_to_task(r) for r in conn.execute(sql, params).fetchall()]

    def save(self, task: Task) -> Task:
        """
        Insert or update by id (last-write-wins).

        id=None inserts a new row; otherwise every column except owner_id and
        created_at is overwritten. Saving an id whose row is gone raises
        NotFound; a deleted task is never written back. Returns the stored
        record.
        """
        now = time.time()
        values = (
            task.title,
            task.description,
            task.priority.value,
            _to_ts(task.due_at),
            task.status.value,
            task.category.value,
            self._deps_to_str(task.dependencies),
            task.recurrence.value,
            1 if task.notified else 0,
            task.progress,
        )

        with self._conn() as conn:
            cur = conn.cursor()
            if task.id is None:
                cur.execute(
                    """
                    INSERT INTO tasks(
                        title, description, priority, due_at, status, category,
                        dependencies, recurrence, notified, progress,
                        owner_id, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*values, int(task.owner_id), now, now),
                )
                rowid = cur.lastrowid
                if rowid is None:
                    raise StoreUnavailable("SQLite did not return lastrowid for tasks insert")
                task_id = int(rowid)
                logger.debug("Task inserted id=%s owner=%s", task_id, task.owner_id)
            else:
                task_id = int(task.id)
                cur.execute(
                    """
                    UPDATE tasks SET
                        title = ?, description = ?, priority = ?, due_at = ?, status = ?,
                        category = ?, dependencies = ?, recurrence = ?, notified = ?,
                        progress = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (*values, now, task_id),
                )
                if cur.rowcount == 0:
                    raise NotFound("task", task_id)
            conn.commit()
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            return self._row_to_task(row)

    def delete_one(self, task_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            return cur.rowcount == 1
