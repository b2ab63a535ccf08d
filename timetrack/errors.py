from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    CONNECTION_LOST = "connection_lost"
    CORRUPTION = "corruption"
    CONSTRAINT = "constraint"
    PERMISSION_DENIED = "permission_denied"
    FATAL = "fatal"


class TimeTrackError(Exception):
    """Base class for every error raised by timetrack."""


class StoreError(TimeTrackError):
    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransientStoreError(StoreError):
    """Still busy or locked after the last retry."""

    kind = ErrorKind.TRANSIENT


class ConnectionLost(StoreError):
    kind = ErrorKind.CONNECTION_LOST


class CorruptionError(StoreError):
    kind = ErrorKind.CORRUPTION


class ConstraintViolation(StoreError):
    kind = ErrorKind.CONSTRAINT


class DuplicateName(ConstraintViolation):
    def __init__(self, name: str, entity: str = "task", attempts: int = 1) -> None:
        super().__init__(f"{entity} name already exists: {name!r}", attempts)
        self.name = name
        self.entity = entity


class StorageUnavailable(StoreError):
    kind = ErrorKind.PERMISSION_DENIED


PermissionDenied = StorageUnavailable


class FatalStoreError(StoreError):
    kind = ErrorKind.FATAL


ERRORS_BY_KIND: dict[ErrorKind, type[StoreError]] = {
    ErrorKind.TRANSIENT: TransientStoreError,
    ErrorKind.CONNECTION_LOST: ConnectionLost,
    ErrorKind.CORRUPTION: CorruptionError,
    ErrorKind.CONSTRAINT: ConstraintViolation,
    ErrorKind.PERMISSION_DENIED: StorageUnavailable,
    ErrorKind.FATAL: FatalStoreError,
}


class TransactionAlreadyActive(TimeTrackError):
    pass


class ValidationError(TimeTrackError, ValueError):
    pass


class TaskNotFound(TimeTrackError, LookupError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class SessionNotFound(TimeTrackError, LookupError):
    def __init__(self, session_id: int) -> None:
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class SessionError(TimeTrackError):
    pass


class InvalidTransition(SessionError):
    def __init__(self, current: str, action: str) -> None:
        super().__init__(f"cannot {action} while {current}")
        self.current = current
        self.action = action


class SessionAlreadyActive(SessionError):
    def __init__(self, session_id: int | None = None) -> None:
        detail = f" (session {session_id})" if session_id is not None else ""
        super().__init__(f"a session is already active{detail}")
        self.session_id = session_id


class NoActiveTask(SessionError):
    def __init__(self) -> None:
        super().__init__("no task selected")
