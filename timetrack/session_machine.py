from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
import logging
import threading
from typing import Callable

from .clock import Clock, RealClock
from .errors import InvalidTransition, NoActiveTask, SessionAlreadyActive, SessionNotFound, TaskNotFound
from .models import SessionRecord, SessionState
from .repositories import SessionRepository
from .unit_of_work import TransactionCoordinator, UnitOfWork

logger = logging.getLogger(__name__)

_ZERO = timedelta(0)


@dataclass(frozen=True)
class TimerSnapshot:
    state: SessionState
    session_id: int | None
    task_id: int | None
    start_time: datetime | None
    elapsed_seconds: float
    paused_seconds: float


@dataclass(frozen=True)
class _Timer:
    state: SessionState = SessionState.STOPPED
    session_id: int | None = None
    task_id: int | None = None
    start_time: datetime | None = None
    # Elapsed is measured from the anchor; reset() moves it without touching start_time.
    anchor: datetime | None = None
    paused_total: timedelta = _ZERO
    paused_at: datetime | None = None
    final: timedelta = _ZERO

    def elapsed(self, now: datetime) -> timedelta:
        if self.state is SessionState.RUNNING and self.anchor is not None:
            return max(_ZERO, (now - self.anchor) - self.paused_total)
        if self.state is SessionState.PAUSED and self.anchor is not None and self.paused_at is not None:
            return max(_ZERO, (self.paused_at - self.anchor) - self.paused_total)
        return self.final

    def paused(self, now: datetime) -> timedelta:
        if self.state is SessionState.PAUSED and self.paused_at is not None:
            return self.paused_total + (now - self.paused_at)
        return self.paused_total


class SessionStateMachine:
    """Single active timer backed by the Sessions table.

    Every transition that changes persisted state writes through the session
    repository first; the in-memory timer only moves once that write succeeds.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        coordinator: TransactionCoordinator,
        clock: Clock | None = None,
    ) -> None:
        self._sessions = sessions
        self._coordinator = coordinator
        self._clock = clock or RealClock()
        self._lock = threading.Lock()
        self._timer = _Timer()

    @property
    def state(self) -> SessionState:
        return self._timer.state

    @property
    def session_id(self) -> int | None:
        return self._timer.session_id

    @property
    def task_id(self) -> int | None:
        return self._timer.task_id

    def elapsed(self, now: datetime | None = None) -> timedelta:
        return self._timer.elapsed(now or self._clock.now())

    def snapshot(self, now: datetime | None = None) -> TimerSnapshot:
        timer = self._timer
        at = now or self._clock.now()
        return TimerSnapshot(
            state=timer.state,
            session_id=timer.session_id,
            task_id=timer.task_id,
            start_time=timer.start_time,
            elapsed_seconds=timer.elapsed(at).total_seconds(),
            paused_seconds=timer.paused(at).total_seconds(),
        )

    def start(self, task_id: int | None, notes: str | None = None) -> TimerSnapshot:
        if task_id is None:
            raise NoActiveTask()
        with self._lock:
            current = self._timer
            if current.state is not SessionState.STOPPED and self._still_open(current):
                raise SessionAlreadyActive(current.session_id)
            now = self._clock.now()

            def open_session(uow: UnitOfWork) -> int:
                if uow.tasks.get(task_id) is None:
                    raise TaskNotFound(task_id)
                existing = uow.sessions.get_open()
                if existing is not None:
                    raise SessionAlreadyActive(existing.id)
                return uow.sessions.insert_open(task_id, now, notes)

            session_id = self._coordinator.run_in_transaction(open_session)
            self._timer = _Timer(
                state=SessionState.RUNNING,
                session_id=session_id,
                task_id=task_id,
                start_time=now,
                anchor=now,
            )
            logger.info("session %d started for task %d", session_id, task_id)
            return self.snapshot(now)

    def pause(self) -> TimerSnapshot:
        with self._lock:
            current = self._timer
            if current.state is not SessionState.RUNNING:
                raise InvalidTransition(current.state.value, "pause")
            now = self._clock.now()
            self._commit(
                replace(current, state=SessionState.PAUSED, paused_at=now),
                lambda: self._sessions.update_state(current.session_id, SessionState.PAUSED),
            )
            logger.info("session %d paused", current.session_id)
            return self.snapshot(now)

    def resume(self) -> TimerSnapshot:
        with self._lock:
            current = self._timer
            if current.state is not SessionState.PAUSED or current.paused_at is None:
                raise InvalidTransition(current.state.value, "resume")
            now = self._clock.now()
            self._commit(
                replace(
                    current,
                    state=SessionState.RUNNING,
                    paused_total=current.paused_total + (now - current.paused_at),
                    paused_at=None,
                ),
                lambda: self._sessions.update_state(current.session_id, SessionState.RUNNING),
            )
            logger.info("session %d resumed", current.session_id)
            return self.snapshot(now)

    def stop(self, notes: str | None = None) -> SessionRecord:
        with self._lock:
            current = self._timer
            if current.state is SessionState.STOPPED or current.session_id is None:
                raise InvalidTransition(current.state.value, "stop")
            now = self._clock.now()
            paused_total = current.paused(now)
            final = max(_ZERO, (now - (current.anchor or now)) - paused_total)
            closed: list[SessionRecord] = []
            self._commit(
                _Timer(final=final),
                lambda: closed.append(self._sessions.close(current.session_id, now, notes)),
            )
            logger.info(
                "session %d stopped, %.0fs active, %.0fs paused",
                current.session_id,
                final.total_seconds(),
                paused_total.total_seconds(),
            )
            return closed[0]

    def reset(self) -> TimerSnapshot:
        """Zero the displayed counters; the persisted session is left as is."""
        with self._lock:
            now = self._clock.now()
            current = self._timer
            if current.state is SessionState.STOPPED:
                self._timer = replace(current, final=_ZERO)
            elif current.state is SessionState.RUNNING:
                self._timer = replace(current, anchor=now, paused_total=_ZERO)
            else:
                self._timer = replace(current, anchor=now, paused_at=now, paused_total=_ZERO)
            return self.snapshot(now)

    def restore(self) -> TimerSnapshot:
        """Adopt the open session left in the store, e.g. by a previous process."""
        with self._lock:
            now = self._clock.now()
            if self._timer.state is not SessionState.STOPPED:
                return self.snapshot(now)
            record = self._sessions.get_open()
            if record is None:
                return self.snapshot(now)
            # Paused spans from before the restore were never persisted.
            self._timer = _Timer(
                state=record.state,
                session_id=record.id,
                task_id=record.task_id,
                start_time=record.start_time,
                anchor=record.start_time,
                paused_at=now if record.state is SessionState.PAUSED else None,
            )
            logger.info("restored open session %d (%s)", record.id, record.state.value)
            return self.snapshot(now)

    def refresh(self) -> TimerSnapshot:
        """Stop the in-memory timer if its session row was deleted or closed elsewhere."""
        with self._lock:
            current = self._timer
            if current.state is not SessionState.STOPPED:
                self._still_open(current)
            return self.snapshot()

    def _still_open(self, timer: _Timer) -> bool:
        record = self._sessions.get(timer.session_id) if timer.session_id is not None else None
        if record is not None and record.is_open:
            return True
        self._drop(timer)
        return False

    def _drop(self, timer: _Timer) -> None:
        # The row went away underneath us, e.g. its task was deleted.
        logger.warning("session %s is no longer open in the store, timer stopped", timer.session_id)
        self._timer = _Timer()

    def _commit(self, new: _Timer, persist: Callable[[], object]) -> None:
        try:
            persist()
        except SessionNotFound:
            self._drop(self._timer)
            raise
        except Exception:
            logger.warning("session transition not persisted, state stays %s", self._timer.state.value)
            raise
        self._timer = new
