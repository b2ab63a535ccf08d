from __future__ import annotations

from datetime import datetime, timedelta, timezone
import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def sleep(self, seconds: float) -> None:
        ...


class RealClock:
    """Wall clock in UTC, the zone every stored timestamp uses."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FakeClock:
    """Manually driven clock; sleeping advances time instead of blocking."""

    def __init__(self, start: datetime | None = None) -> None:
        origin = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._current = origin if origin.tzinfo else origin.replace(tzinfo=timezone.utc)
        self._guard = threading.Lock()
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        with self._guard:
            return self._current

    def sleep(self, seconds: float) -> None:
        with self._guard:
            self.sleeps.append(seconds)
            self._current += timedelta(seconds=max(0.0, seconds))

    def advance(self, seconds: float) -> datetime:
        with self._guard:
            self._current += timedelta(seconds=seconds)
            return self._current
