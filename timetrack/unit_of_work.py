from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Callable, TypeVar

from .clock import Clock, RealClock
from .errors import TransactionAlreadyActive
from .repositories import CategoryRepository, SessionRepository, TaskRepository
from .retry import Operation, RetryExecutor, as_store_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _TransactionRunner:
    """Runs operations straight on the connection of an open transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def __call__(self, op: Operation[T]) -> T:
        try:
            return op(self._conn)
        except sqlite3.Error as exc:
            raise as_store_error(exc) from exc


class UnitOfWork:
    """Repositories bound to one open transaction. Valid only inside run_in_transaction."""

    def __init__(self, conn: sqlite3.Connection, clock: Clock) -> None:
        runner = _TransactionRunner(conn)
        self.tasks = TaskRepository(runner, clock=clock)
        self.categories = CategoryRepository(runner)
        self.sessions = SessionRepository(runner)


class TransactionCoordinator:
    def __init__(self, executor: RetryExecutor, clock: Clock | None = None) -> None:
        self.executor = executor
        self.clock = clock or RealClock()
        self._owner: int | None = None

    @property
    def active(self) -> bool:
        return self._owner is not None

    def run_in_transaction(self, work: Callable[[UnitOfWork], T]) -> T:
        return self.atomic(lambda conn: work(UnitOfWork(conn, self.clock)))

    def atomic(self, op: Operation[T]) -> T:
        """Run op between BEGIN and COMMIT inside a single executor attempt.

        A transient failure retries the whole transaction; any other error
        rolls back and propagates.
        """
        if self._owner == threading.get_ident():
            raise TransactionAlreadyActive("a transaction is already active on this thread")
        return self.executor.execute(lambda conn: self._run_once(conn, op))

    def _run_once(self, conn: sqlite3.Connection, op: Operation[T]) -> T:
        self._owner = threading.get_ident()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = op(conn)
                conn.execute("COMMIT")
            except BaseException:
                self._rollback(conn)
                raise
            return result
        finally:
            self._owner = None

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            # The caller re-raises the error that caused the rollback.
            logger.error("rollback failed: %s", exc)
