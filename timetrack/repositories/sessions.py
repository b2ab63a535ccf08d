from __future__ import annotations

from datetime import datetime
import sqlite3

from ..errors import InvalidTransition, SessionNotFound
from ..models import (
    LEGAL_TRANSITIONS,
    SessionRecord,
    SessionState,
    SessionSummary,
    from_utc_text,
    to_utc_text,
)
from .base import Runner

_SESSION_SELECT = "SELECT Id, TaskId, StartTime, EndTime, Notes, State FROM Sessions "
_OPEN_CLAUSE = "COALESCE(State, 'Stopped') != 'Stopped'"


class SessionRepository:
    def __init__(self, run: Runner, atomic: Runner | None = None) -> None:
        self._run = run
        self._atomic = atomic or run

    def insert_open(self, task_id: int, start_time: datetime, notes: str | None = None) -> int:
        params = (task_id, to_utc_text(start_time), _clean_notes(notes), SessionState.RUNNING.value)
        return self._run(
            lambda conn: int(
                conn.execute(
                    "INSERT INTO Sessions (TaskId, StartTime, Notes, State) VALUES (?, ?, ?, ?)",
                    params,
                ).lastrowid
            )
        )

    def update_state(self, session_id: int, new_state: SessionState) -> None:
        """Move an open session between Running and Paused."""
        target = SessionState(new_state)

        def op(conn: sqlite3.Connection) -> None:
            current = _current_state(conn, session_id)
            if target is SessionState.STOPPED or target not in LEGAL_TRANSITIONS[current]:
                raise InvalidTransition(current.value, f"move to {target.value}")
            conn.execute("UPDATE Sessions SET State = ? WHERE Id = ?", (target.value, session_id))

        self._atomic(op)

    def close(self, session_id: int, end_time: datetime, notes: str | None = None) -> SessionRecord:
        """Stop the session. Empty notes keep whatever was stored before."""

        def op(conn: sqlite3.Connection) -> SessionRecord:
            current = _current_state(conn, session_id)
            if current is SessionState.STOPPED:
                raise InvalidTransition(current.value, "stop")
            conn.execute(
                "UPDATE Sessions SET EndTime = ?, State = ?, Notes = COALESCE(NULLIF(?, ''), Notes) "
                "WHERE Id = ?",
                (to_utc_text(end_time), SessionState.STOPPED.value, _clean_notes(notes) or "", session_id),
            )
            row = conn.execute(f"{_SESSION_SELECT}WHERE Id = ?", (session_id,)).fetchone()
            return _to_session(row)

        return self._atomic(op)

    def get(self, session_id: int) -> SessionRecord | None:
        items = self._select(f"{_SESSION_SELECT}WHERE Id = ?", (session_id,))
        return items[0] if items else None

    def get_open(self) -> SessionRecord | None:
        items = self._select(f"{_SESSION_SELECT}WHERE {_OPEN_CLAUSE} ORDER BY StartTime DESC LIMIT 1", ())
        return items[0] if items else None

    def get_for_task(self, task_id: int) -> list[SessionRecord]:
        return self._select(f"{_SESSION_SELECT}WHERE TaskId = ? ORDER BY StartTime DESC", (task_id,))

    def get_all(self) -> list[SessionRecord]:
        return self._select(f"{_SESSION_SELECT}ORDER BY StartTime ASC", ())

    def get_between(self, start: datetime, end: datetime) -> list[SessionRecord]:
        return self._select(
            f"{_SESSION_SELECT}WHERE StartTime >= ? AND StartTime < ? ORDER BY StartTime ASC",
            (to_utc_text(start), to_utc_text(end)),
        )

    def summary(self) -> list[SessionSummary]:
        """Closed-session totals per task, busiest first."""
        sql = """
            SELECT t.Id AS TaskId,
                   t.Name AS TaskName,
                   c.Name AS CategoryName,
                   COUNT(s.Id) AS SessionCount,
                   COALESCE(SUM(
                       CASE WHEN s.EndTime IS NOT NULL
                            THEN (julianday(s.EndTime) - julianday(s.StartTime)) * 86400.0
                       END
                   ), 0) AS TotalSeconds
            FROM Tasks t
            LEFT JOIN Categories c ON c.Id = t.CategoryId
            LEFT JOIN Sessions s ON s.TaskId = t.Id
            GROUP BY t.Id, t.Name, c.Name
            ORDER BY TotalSeconds DESC, t.Name ASC
        """
        rows = self._run(lambda conn: conn.execute(sql).fetchall())
        return [
            SessionSummary(
                task_id=int(row["TaskId"]),
                task_name=row["TaskName"],
                category_name=row["CategoryName"],
                session_count=int(row["SessionCount"]),
                total_seconds=max(0, int(round(float(row["TotalSeconds"])))),
            )
            for row in rows
        ]

    def _select(self, sql: str, params: tuple[object, ...]) -> list[SessionRecord]:
        rows = self._run(lambda conn: conn.execute(sql, params).fetchall())
        return [_to_session(row) for row in rows]


def _clean_notes(notes: str | None) -> str | None:
    return (notes or "").strip() or None


def _current_state(conn: sqlite3.Connection, session_id: int) -> SessionState:
    row = conn.execute("SELECT State FROM Sessions WHERE Id = ?", (session_id,)).fetchone()
    if row is None:
        raise SessionNotFound(session_id)
    return SessionState(row["State"] or SessionState.STOPPED.value)


def _to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=int(row["Id"]),
        task_id=int(row["TaskId"]),
        start_time=from_utc_text(row["StartTime"]),
        end_time=from_utc_text(row["EndTime"]) if row["EndTime"] else None,
        notes=row["Notes"],
        state=SessionState(row["State"] or SessionState.STOPPED.value),
    )
