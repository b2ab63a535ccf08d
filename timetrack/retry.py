from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from .clock import Clock, RealClock
from .errors import ERRORS_BY_KIND, ErrorKind, StoreError, TimeTrackError, TransactionAlreadyActive

if TYPE_CHECKING:
    from .connection import ConnectionGuard

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[sqlite3.Connection], T]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 0.1

SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_READONLY = 8
SQLITE_CORRUPT = 11
SQLITE_CANTOPEN = 14
SQLITE_CONSTRAINT = 19
SQLITE_NOTADB = 26

# SQLITE_CORRUPT on a live handle is usually a lock artifact, so it is retried.
_KIND_BY_CODE: dict[int, ErrorKind] = {
    SQLITE_BUSY: ErrorKind.TRANSIENT,
    SQLITE_LOCKED: ErrorKind.TRANSIENT,
    SQLITE_READONLY: ErrorKind.TRANSIENT,
    SQLITE_CORRUPT: ErrorKind.TRANSIENT,
    SQLITE_CANTOPEN: ErrorKind.CONNECTION_LOST,
    SQLITE_CONSTRAINT: ErrorKind.CONSTRAINT,
    SQLITE_NOTADB: ErrorKind.CORRUPTION,
}

_KIND_BY_MESSAGE: tuple[tuple[str, ErrorKind], ...] = (
    ("database is locked", ErrorKind.TRANSIENT),
    ("database table is locked", ErrorKind.TRANSIENT),
    ("database schema is locked", ErrorKind.TRANSIENT),
    ("readonly database", ErrorKind.TRANSIENT),
    ("disk image is malformed", ErrorKind.TRANSIENT),
    ("file is not a database", ErrorKind.CORRUPTION),
    ("unable to open database", ErrorKind.CONNECTION_LOST),
    ("closed database", ErrorKind.CONNECTION_LOST),
)

_CORRUPTION_CODES = frozenset({SQLITE_CORRUPT, SQLITE_NOTADB})
_CORRUPTION_MESSAGES = ("disk image is malformed", "malformed database", "file is not a database")


def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, StoreError):
        return exc.kind
    if isinstance(exc, sqlite3.IntegrityError):
        return ErrorKind.CONSTRAINT
    if not isinstance(exc, sqlite3.Error):
        return ErrorKind.FATAL

    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int):
        kind = _KIND_BY_CODE.get(code & 0xFF)
        if kind is not None:
            return kind

    message = str(exc).lower()
    for fragment, kind in _KIND_BY_MESSAGE:
        if fragment in message:
            return kind
    return ErrorKind.FATAL


def is_corruption(exc: BaseException) -> bool:
    """Stricter than classify(): used when probing a file at open time."""
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and (code & 0xFF) in _CORRUPTION_CODES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _CORRUPTION_MESSAGES)


def as_store_error(exc: BaseException, attempts: int = 1) -> BaseException:
    if isinstance(exc, TimeTrackError) or not isinstance(exc, sqlite3.Error):
        return exc
    error_type = ERRORS_BY_KIND[classify(exc)]
    error = error_type(str(exc), attempts=attempts)
    error.__cause__ = exc
    return error


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    kind: ErrorKind | None = None
    error: BaseException | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.kind is None

    def unwrap(self) -> T:
        if self.kind is None:
            return self.value  # type: ignore[return-value]
        if self.error is None:
            raise ERRORS_BY_KIND[self.kind](f"operation failed ({self.kind.value})", attempts=self.attempts)
        error = as_store_error(self.error, attempts=self.attempts)
        if isinstance(error, StoreError):
            error.attempts = self.attempts
        raise error


def retry_with_backoff(
    call: Callable[[], T],
    retries: int,
    base_delay: float,
    sleep: Callable[[float], None],
) -> T:
    """Exponential backoff for transient failures only; used outside the store lock."""
    attempt = 0
    while True:
        try:
            return call()
        except sqlite3.Error as exc:
            if attempt >= retries or classify(exc) is not ErrorKind.TRANSIENT:
                raise
            delay = base_delay * (2**attempt)
            logger.debug("transient error %r, backing off %.3fs", exc, delay)
            sleep(delay)
            attempt += 1


class RetryExecutor:
    def __init__(
        self,
        guard: ConnectionGuard,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        clock: Clock | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.guard = guard
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.clock = clock or RealClock()

    def execute(self, op: Operation[T]) -> T:
        return self.run(op).unwrap()

    def execute_with_backoff(self, op: Operation[T]) -> T:
        return self.run(op, backoff=True).unwrap()

    def run(self, op: Operation[T], backoff: bool = False) -> Outcome[T]:
        if self.guard.lock.held_by_current_thread():
            raise TransactionAlreadyActive(
                "store operation issued while this thread holds the store lock; "
                "use the unit-of-work repositories inside a transaction"
            )
        max_attempts = self.max_retries + 1
        outcome: Outcome[T] = Outcome()
        for attempt in range(1, max_attempts + 1):
            outcome = self._attempt(op, attempt)
            if outcome.ok:
                return outcome

            kind = outcome.kind
            if kind is ErrorKind.TRANSIENT:
                pass
            elif kind is ErrorKind.CONNECTION_LOST and not self.guard.closed:
                pass
            else:
                return outcome

            if attempt == max_attempts:
                break

            delay = self.base_delay * (2 ** (attempt - 1)) if backoff else self.base_delay
            logger.debug(
                "attempt %d/%d failed (%s: %s), retrying in %.3fs",
                attempt,
                max_attempts,
                kind.value,
                outcome.error,
                delay,
            )
            self.clock.sleep(delay)
            if kind is ErrorKind.CONNECTION_LOST:
                self._reopen()

        logger.warning(
            "store operation gave up after %d attempts (%s): %s",
            outcome.attempts,
            outcome.kind.value if outcome.kind else "?",
            outcome.error,
        )
        return outcome

    def _attempt(self, op: Operation[T], attempt: int) -> Outcome[T]:
        with self.guard.lock:
            try:
                value = op(self.guard.handle())
            except Exception as exc:
                return Outcome(kind=classify(exc), error=exc, attempts=attempt)
        return Outcome(value=value, attempts=attempt)

    def _reopen(self) -> None:
        try:
            self.guard.reopen()
        except StoreError as exc:
            # The next attempt's handle() reopens again and reports the failure.
            logger.warning("reopen failed: %s", exc)
