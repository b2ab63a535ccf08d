from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import re
from typing import Iterable

from .errors import ValidationError

TASK_NAME_MIN = 3
TASK_NAME_MAX = 100
FORBIDDEN_NAME_CHARS = ("/", "\\")
DEFAULT_COLOR = "#FFFFFF"

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


class SessionState(str, Enum):
    RUNNING = "Running"
    PAUSED = "Paused"
    STOPPED = "Stopped"


# Stopped is only reachable through close(), which also writes EndTime.
LEGAL_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.RUNNING: frozenset({SessionState.PAUSED, SessionState.STOPPED}),
    SessionState.PAUSED: frozenset({SessionState.RUNNING, SessionState.STOPPED}),
    SessionState.STOPPED: frozenset(),
}


def to_utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIME_FORMAT)


def from_utc_text(text: str) -> datetime:
    # Also accepts sqlite's datetime('now') form used by the CreatedAt default.
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def normalize_tags(raw: str | Iterable[str]) -> list[str]:
    if isinstance(raw, str):
        pieces = raw.split(",")
    else:
        pieces = list(raw)

    clean: list[str] = []
    seen: set[str] = set()
    for piece in pieces:
        tag = str(piece).strip().lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        clean.append(tag)
    return clean


def validate_task_name(name: str) -> str:
    text = (name or "").strip()
    if not TASK_NAME_MIN <= len(text) <= TASK_NAME_MAX:
        raise ValidationError(
            f"task name must be {TASK_NAME_MIN}-{TASK_NAME_MAX} characters, got {len(text)}"
        )
    for ch in FORBIDDEN_NAME_CHARS:
        if ch in text:
            raise ValidationError(f"task name must not contain {ch!r}")
    return text


def validate_category(name: str, color: str) -> tuple[str, str]:
    text = (name or "").strip()
    if not text:
        raise ValidationError("category name must not be empty")
    hex_color = (color or DEFAULT_COLOR).strip()
    if not _HEX_COLOR.match(hex_color):
        raise ValidationError(f"invalid hex color: {color!r}")
    return text, hex_color.upper()


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    color: str = DEFAULT_COLOR


@dataclass(frozen=True)
class TaskItem:
    id: int
    name: str
    is_complete: bool
    category_id: int | None
    created_at: datetime
    tags: tuple[str, ...] = field(default_factory=tuple)
    category_name: str | None = None


@dataclass(frozen=True)
class SessionRecord:
    id: int
    task_id: int
    start_time: datetime
    end_time: datetime | None
    notes: str | None
    state: SessionState

    @property
    def is_open(self) -> bool:
        return self.state != SessionState.STOPPED

    @property
    def duration(self) -> timedelta | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@dataclass(frozen=True)
class SessionSummary:
    task_id: int
    task_name: str
    category_name: str | None
    session_count: int
    total_seconds: int
