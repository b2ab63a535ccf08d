from __future__ import annotations

import sqlite3
from typing import Iterable

from ..clock import Clock, RealClock
from ..errors import DuplicateName, TaskNotFound
from ..models import TaskItem, from_utc_text, normalize_tags, to_utc_text, validate_task_name
from .base import Runner, is_unique_violation

_TASK_SELECT = (
    "SELECT t.Id, t.Name, t.IsComplete, t.CategoryId, t.CreatedAt, c.Name AS CategoryName "
    "FROM Tasks t LEFT JOIN Categories c ON c.Id = t.CategoryId "
)


class TaskRepository:
    def __init__(self, run: Runner, atomic: Runner | None = None, clock: Clock | None = None) -> None:
        self._run = run
        self._atomic = atomic or run
        self._clock = clock or RealClock()

    def create(self, name: str, category_id: int | None = None, tags: Iterable[str] = ()) -> int:
        clean = validate_task_name(name)
        tag_list = normalize_tags(tags)
        created_at = to_utc_text(self._clock.now())

        def op(conn: sqlite3.Connection) -> int:
            try:
                cur = conn.execute(
                    "INSERT INTO Tasks (Name, IsComplete, CategoryId, CreatedAt) VALUES (?, 0, ?, ?)",
                    (clean, category_id, created_at),
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc):
                    raise DuplicateName(clean) from exc
                raise
            task_id = int(cur.lastrowid)
            conn.executemany(
                "INSERT INTO TaskTags (TaskId, Tag) VALUES (?, ?)",
                [(task_id, tag) for tag in tag_list],
            )
            return task_id

        return (self._atomic if tag_list else self._run)(op)

    def create_or_get(self, name: str) -> int:
        """Insert the task unless one with this name exists; return its id either way."""
        clean = validate_task_name(name)
        created_at = to_utc_text(self._clock.now())

        def op(conn: sqlite3.Connection) -> int:
            conn.execute(
                "INSERT OR IGNORE INTO Tasks (Name, IsComplete, CreatedAt) VALUES (?, 0, ?)",
                (clean, created_at),
            )
            row = conn.execute("SELECT Id FROM Tasks WHERE Name = ?", (clean,)).fetchone()
            return int(row["Id"])

        return self._atomic(op)

    def get_all(self) -> list[TaskItem]:
        return self._run(lambda conn: self._read(conn, f"{_TASK_SELECT}ORDER BY t.Name", ()))

    def get(self, task_id: int) -> TaskItem | None:
        items = self._run(lambda conn: self._read(conn, f"{_TASK_SELECT}WHERE t.Id = ?", (task_id,)))
        return items[0] if items else None

    def get_by_name(self, name: str) -> TaskItem | None:
        items = self._run(
            lambda conn: self._read(conn, f"{_TASK_SELECT}WHERE t.Name = ?", (name.strip(),))
        )
        return items[0] if items else None

    def filter_by_completion(self, is_complete: bool) -> list[TaskItem]:
        return self._run(
            lambda conn: self._read(
                conn,
                f"{_TASK_SELECT}WHERE t.IsComplete = ? ORDER BY t.Name",
                (1 if is_complete else 0,),
            )
        )

    def set_category(self, task_id: int, category_id: int | None) -> None:
        self._update(task_id, "UPDATE Tasks SET CategoryId = ? WHERE Id = ?", (category_id, task_id))

    def set_complete(self, task_id: int, is_complete: bool = True) -> None:
        self._update(
            task_id,
            "UPDATE Tasks SET IsComplete = ? WHERE Id = ?",
            (1 if is_complete else 0, task_id),
        )

    def rename(self, task_id: int, name: str) -> None:
        clean = validate_task_name(name)

        def op(conn: sqlite3.Connection) -> int:
            try:
                return conn.execute("UPDATE Tasks SET Name = ? WHERE Id = ?", (clean, task_id)).rowcount
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc):
                    raise DuplicateName(clean) from exc
                raise

        if self._run(op) == 0:
            raise TaskNotFound(task_id)

    def get_tags(self, task_id: int) -> list[str]:
        rows = self._run(
            lambda conn: conn.execute(
                "SELECT Tag FROM TaskTags WHERE TaskId = ? ORDER BY Tag", (task_id,)
            ).fetchall()
        )
        return [str(row["Tag"]) for row in rows]

    def replace_tags(self, task_id: int, tags: Iterable[str]) -> list[str]:
        """Swap the whole tag set in one transaction; a failed insert leaves the old set intact."""
        tag_list = normalize_tags(tags)

        def op(conn: sqlite3.Connection) -> list[str]:
            if conn.execute("SELECT 1 FROM Tasks WHERE Id = ?", (task_id,)).fetchone() is None:
                raise TaskNotFound(task_id)
            conn.execute("DELETE FROM TaskTags WHERE TaskId = ?", (task_id,))
            for tag in tag_list:
                conn.execute("INSERT INTO TaskTags (TaskId, Tag) VALUES (?, ?)", (task_id, tag))
            return sorted(tag_list)

        return self._atomic(op)

    def delete(self, task_id: int) -> bool:
        """Delete the task with its tags and sessions; the category is left alone."""

        def op(conn: sqlite3.Connection) -> bool:
            conn.execute("DELETE FROM TaskTags WHERE TaskId = ?", (task_id,))
            conn.execute("DELETE FROM Sessions WHERE TaskId = ?", (task_id,))
            return conn.execute("DELETE FROM Tasks WHERE Id = ?", (task_id,)).rowcount > 0

        return self._atomic(op)

    def _update(self, task_id: int, sql: str, params: tuple[object, ...]) -> None:
        if self._run(lambda conn: conn.execute(sql, params).rowcount) == 0:
            raise TaskNotFound(task_id)

    @staticmethod
    def _read(conn: sqlite3.Connection, sql: str, params: tuple[object, ...]) -> list[TaskItem]:
        rows = conn.execute(sql, params).fetchall()
        if not rows:
            return []

        ids = [int(row["Id"]) for row in rows]
        placeholders = ",".join("?" for _ in ids)
        tags: dict[int, list[str]] = {}
        for tag_row in conn.execute(
            f"SELECT TaskId, Tag FROM TaskTags WHERE TaskId IN ({placeholders}) ORDER BY Tag",
            ids,
        ).fetchall():
            tags.setdefault(int(tag_row["TaskId"]), []).append(str(tag_row["Tag"]))

        items: list[TaskItem] = []
        for row in rows:
            task_id = int(row["Id"])
            items.append(
                TaskItem(
                    id=task_id,
                    name=row["Name"],
                    is_complete=bool(row["IsComplete"]),
                    category_id=row["CategoryId"],
                    created_at=from_utc_text(row["CreatedAt"]),
                    tags=tuple(tags.get(task_id, [])),
                    category_name=row["CategoryName"],
                )
            )
        return items
