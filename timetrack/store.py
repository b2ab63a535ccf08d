from __future__ import annotations

from pathlib import Path
import sqlite3
from typing import Any, Callable, TypeVar

from .clock import Clock, RealClock
from .config import AppSettings
from .connection import ConnectionGuard, OpenStatus, StoreOptions, ensure_writable, sidecar_paths
from .errors import StorageUnavailable
from .repositories import CategoryRepository, SessionRepository, TaskRepository
from .retry import RetryExecutor
from .session_machine import SessionStateMachine
from .unit_of_work import TransactionCoordinator, UnitOfWork

T = TypeVar("T")


class TimeTrackStore:
    """Owns the connection guard and hands out repositories that share it."""

    def __init__(
        self,
        db_path: Path | None = None,
        settings: AppSettings | None = None,
        clock: Clock | None = None,
        options: StoreOptions | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.clock = clock or RealClock()
        self.db_path = Path(db_path) if db_path is not None else self.settings.resolved_db_path()
        self.guard = ConnectionGuard(self.db_path, options or self.settings.store_options(), self.clock)
        self.executor = RetryExecutor(
            self.guard,
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_delay,
            clock=self.clock,
        )
        self.coordinator = TransactionCoordinator(self.executor, self.clock)
        self.tasks = TaskRepository(self.executor.execute, self.coordinator.atomic, self.clock)
        self.categories = CategoryRepository(self.executor.execute, self.coordinator.atomic)
        self.sessions = SessionRepository(self.executor.execute, self.coordinator.atomic)
        self.status: OpenStatus | None = None

    @property
    def recreated(self) -> bool:
        return self.status is OpenStatus.DATABASE_RECREATED

    def open(self) -> OpenStatus:
        self.status = self.guard.open()
        return self.status

    def reset(self) -> OpenStatus:
        """Delete every task, category and session by rebuilding the database file."""
        self.status = self.guard.recreate()
        return self.status

    def close(self) -> None:
        self.guard.close()

    def run_in_transaction(self, work: Callable[[UnitOfWork], T]) -> T:
        return self.coordinator.run_in_transaction(work)

    def session_machine(self, restore: bool = True) -> SessionStateMachine:
        machine = SessionStateMachine(self.sessions, self.coordinator, self.clock)
        if restore:
            machine.restore()
        return machine

    def __enter__(self) -> TimeTrackStore:
        self.open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()


def open_store(
    db_path: Path | None = None,
    settings: AppSettings | None = None,
    clock: Clock | None = None,
) -> TimeTrackStore:
    store = TimeTrackStore(db_path=db_path, settings=settings, clock=clock)
    store.open()
    return store


def diagnose(db_path: Path) -> dict[str, Any]:
    """Inspect the store files without repairing anything."""
    path = Path(db_path)
    report: dict[str, Any] = {
        "db_path": str(path),
        "directory": str(path.parent),
        "directory_writable": _probe_writable(path.parent),
        "exists": path.exists(),
        "size_bytes": path.stat().st_size if path.exists() else 0,
        "sidecars": {p.name: p.exists() for p in sidecar_paths(path)},
        "tables": [],
        "error": None,
    }
    if not path.exists():
        return report
    try:
        conn = sqlite3.connect(str(path))
        try:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name").fetchall()
            report["tables"] = [str(row[0]) for row in rows if not str(row[0]).startswith("sqlite_")]
        finally:
            conn.close()
    except sqlite3.Error as exc:
        report["error"] = str(exc)
    return report


def _probe_writable(directory: Path) -> bool:
    try:
        ensure_writable(directory)
    except StorageUnavailable:
        return False
    return True
