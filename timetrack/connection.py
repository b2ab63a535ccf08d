from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import sqlite3
import threading
import uuid

from .clock import Clock, RealClock
from .errors import ConnectionLost, StorageUnavailable
from .retry import as_store_error, is_corruption, retry_with_backoff
from .schema import apply_pragmas, check_integrity, initialize_schema

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES = ("-wal", "-shm")

JOURNAL_MODES = frozenset({"WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF"})
SYNCHRONOUS_MODES = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})
TEMP_STORES = frozenset({"DEFAULT", "FILE", "MEMORY"})


class OpenStatus(str, Enum):
    OPENED = "opened"
    CREATED = "created"
    DATABASE_RECREATED = "database_recreated"


@dataclass(frozen=True)
class StoreOptions:
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    temp_store: str = "MEMORY"
    busy_timeout: float = 1.0
    open_retries: int = 3
    open_retry_delay: float = 0.5
    seed_categories: bool = False

    def __post_init__(self) -> None:
        # These end up inside PRAGMA statements, so only known keywords pass.
        for value, allowed, label in (
            (self.journal_mode, JOURNAL_MODES, "journal_mode"),
            (self.synchronous, SYNCHRONOUS_MODES, "synchronous"),
            (self.temp_store, TEMP_STORES, "temp_store"),
        ):
            if value.upper() not in allowed:
                raise ValueError(f"unsupported {label}: {value!r}")
        if self.busy_timeout < 0:
            raise ValueError("busy_timeout must be >= 0")


def sidecar_paths(db_path: Path) -> list[Path]:
    return [db_path.with_name(db_path.name + suffix) for suffix in SIDECAR_SUFFIXES]


def ensure_writable(directory: Path) -> None:
    """Create, write and delete a probe file; raise StorageUnavailable if any step fails."""
    probe = directory / f".write_probe_{uuid.uuid4().hex}.tmp"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        probe.write_bytes(b"probe")
        probe.unlink()
    except OSError as exc:
        raise StorageUnavailable(f"storage directory is not writable: {directory} ({exc})") from exc


class StoreLock:
    """FIFO ticket lock. Waiters block on a condition and are served in arrival order."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._next_ticket = 0
        self._serving = 0
        self._owner: int | None = None

    def acquire(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._owner == me:
                raise RuntimeError("store lock is not reentrant")
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
            self._owner = me

    def release(self) -> None:
        with self._cond:
            if self._owner != threading.get_ident():
                raise RuntimeError("store lock released by a thread that does not hold it")
            self._owner = None
            self._serving += 1
            self._cond.notify_all()

    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    @property
    def locked(self) -> bool:
        return self._owner is not None

    def __enter__(self) -> StoreLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.release()


class ConnectionGuard:
    def __init__(
        self,
        db_path: Path,
        options: StoreOptions | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.options = options or StoreOptions()
        self.clock = clock or RealClock()
        self.lock = StoreLock()
        self.status: OpenStatus | None = None
        self._conn: sqlite3.Connection | None = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> OpenStatus:
        with self.lock:
            if self._conn is not None:
                return self.status or OpenStatus.OPENED
            ensure_writable(self.db_path.parent)
            try:
                return self._open_locked()
            except sqlite3.Error as exc:
                raise as_store_error(exc) from exc

    def handle(self) -> sqlite3.Connection:
        """Return the live connection, reopening once if it went away. Call with the lock held."""
        if self._closed:
            raise ConnectionLost(f"store {self.db_path} is not open")
        conn = self._conn
        if conn is not None and self._usable(conn):
            return conn
        logger.warning("connection to %s is not usable, reopening", self.db_path)
        return self._reopen_locked()

    def reopen(self) -> sqlite3.Connection:
        with self.lock:
            if self._closed:
                raise ConnectionLost(f"store {self.db_path} is not open")
            return self._reopen_locked()

    def recreate(self) -> OpenStatus:
        """Drop the store files and start over with an empty schema, damaged or not."""
        with self.lock:
            self._closed = True
            conn, self._conn = self._conn, None
            if conn is not None:
                conn.close()
            ensure_writable(self.db_path.parent)
            try:
                return self._open_locked(recreate=True)
            except sqlite3.Error as exc:
                raise as_store_error(exc) from exc

    def close(self) -> None:
        with self.lock:
            self._closed = True
            conn, self._conn = self._conn, None
            if conn is None:
                return
            try:
                conn.execute("PRAGMA optimize")
            except sqlite3.Error as exc:
                logger.debug("PRAGMA optimize skipped: %s", exc)
            conn.close()
            logger.info("closed %s", self.db_path)

    def __enter__(self) -> ConnectionGuard:
        self.open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _open_locked(self, recreate: bool = False) -> OpenStatus:
        status = OpenStatus.OPENED
        if recreate or self._needs_recovery():
            self._delete_store_files()
            status = OpenStatus.DATABASE_RECREATED
        elif not self.db_path.exists() or self.db_path.stat().st_size == 0:
            status = OpenStatus.CREATED

        conn = self._connect()
        try:
            created = initialize_schema(conn, seed_categories=self.options.seed_categories)
        except sqlite3.Error:
            conn.close()
            raise
        if created and status is OpenStatus.OPENED:
            status = OpenStatus.CREATED

        self._conn = conn
        self._closed = False
        self.status = status
        logger.info("opened %s (%s)", self.db_path, status.value)
        return status

    def _reopen_locked(self) -> sqlite3.Connection:
        stale, self._conn = self._conn, None
        if stale is not None:
            try:
                stale.close()
            except sqlite3.Error as exc:
                logger.debug("closing stale connection failed: %s", exc)
        try:
            conn = self._connect()
            initialize_schema(conn, seed_categories=self.options.seed_categories)
        except (sqlite3.Error, OSError) as exc:
            raise ConnectionLost(f"cannot reopen {self.db_path}: {exc}") from exc
        self._conn = conn
        return conn

    def _connect(self) -> sqlite3.Connection:
        def connect() -> sqlite3.Connection:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.options.busy_timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            try:
                conn.row_factory = sqlite3.Row
                apply_pragmas(
                    conn,
                    journal_mode=self.options.journal_mode.upper(),
                    synchronous=self.options.synchronous.upper(),
                    temp_store=self.options.temp_store.upper(),
                )
            except sqlite3.Error:
                conn.close()
                raise
            return conn

        return retry_with_backoff(
            connect,
            retries=self.options.open_retries,
            base_delay=self.options.open_retry_delay,
            sleep=self.clock.sleep,
        )

    @staticmethod
    def _usable(conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("SELECT 1").fetchone()
        except sqlite3.ProgrammingError:
            return False
        return True

    def _needs_recovery(self) -> bool:
        if not self.db_path.exists():
            orphans = [path for path in sidecar_paths(self.db_path) if path.exists()]
            if orphans:
                logger.warning(
                    "primary store %s is missing but sidecars remain: %s",
                    self.db_path,
                    ", ".join(path.name for path in orphans),
                )
                return True
            return False

        try:
            probe = sqlite3.connect(str(self.db_path), timeout=self.options.busy_timeout)
        except sqlite3.Error as exc:
            if is_corruption(exc):
                logger.warning("store %s cannot be opened: %s", self.db_path, exc)
                return True
            raise
        try:
            healthy = check_integrity(probe)
        except sqlite3.DatabaseError as exc:
            if not is_corruption(exc):
                raise
            logger.warning("store %s is unreadable: %s", self.db_path, exc)
            return True
        finally:
            probe.close()
        if not healthy:
            logger.warning("store %s failed quick_check", self.db_path)
        return not healthy

    def _delete_store_files(self) -> None:
        logger.warning("deleting store %s and its sidecars; history will be reset", self.db_path)
        for path in (self.db_path, *sidecar_paths(self.db_path)):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise StorageUnavailable(f"cannot delete store file {path}: {exc}") from exc
