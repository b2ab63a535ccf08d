from __future__ import annotations

import sqlite3

from ..errors import DuplicateName
from ..models import DEFAULT_COLOR, Category, validate_category
from .base import Runner, is_unique_violation


class CategoryRepository:
    def __init__(self, run: Runner, atomic: Runner | None = None) -> None:
        self._run = run
        self._atomic = atomic or run

    def create(self, name: str, color: str = DEFAULT_COLOR) -> int:
        clean, hex_color = validate_category(name, color)

        def op(conn: sqlite3.Connection) -> int:
            try:
                cur = conn.execute(
                    "INSERT INTO Categories (Name, Color) VALUES (?, ?)", (clean, hex_color)
                )
            except sqlite3.IntegrityError as exc:
                if is_unique_violation(exc):
                    raise DuplicateName(clean, entity="category") from exc
                raise
            return int(cur.lastrowid)

        return self._run(op)

    def get_all(self) -> list[Category]:
        rows = self._run(
            lambda conn: conn.execute("SELECT Id, Name, Color FROM Categories ORDER BY Name").fetchall()
        )
        return [_to_category(row) for row in rows]

    def get(self, category_id: int) -> Category | None:
        row = self._run(
            lambda conn: conn.execute(
                "SELECT Id, Name, Color FROM Categories WHERE Id = ?", (category_id,)
            ).fetchone()
        )
        return _to_category(row) if row else None

    def get_by_name(self, name: str) -> Category | None:
        row = self._run(
            lambda conn: conn.execute(
                "SELECT Id, Name, Color FROM Categories WHERE Name = ?", (name.strip(),)
            ).fetchone()
        )
        return _to_category(row) if row else None

    def delete(self, category_id: int) -> bool:
        """Detach referencing tasks, then drop the category."""

        def op(conn: sqlite3.Connection) -> bool:
            conn.execute("UPDATE Tasks SET CategoryId = NULL WHERE CategoryId = ?", (category_id,))
            return conn.execute("DELETE FROM Categories WHERE Id = ?", (category_id,)).rowcount > 0

        return self._atomic(op)


def _to_category(row: sqlite3.Row) -> Category:
    return Category(id=int(row["Id"]), name=row["Name"], color=row["Color"] or DEFAULT_COLOR)
