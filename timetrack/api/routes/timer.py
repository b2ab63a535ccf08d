from __future__ import annotations

from fastapi import APIRouter, Depends

from ...session_machine import SessionStateMachine, TimerSnapshot
from ..deps import get_machine
from ..schemas import SessionOut, TimerStartRequest, TimerStateOut, TimerStopRequest, session_out

router = APIRouter(prefix="/api/v1", tags=["timer"])


def _state_out(snapshot: TimerSnapshot) -> TimerStateOut:
    return TimerStateOut(
        state=snapshot.state.value,
        session_id=snapshot.session_id,
        task_id=snapshot.task_id,
        start_time=snapshot.start_time,
        elapsed_seconds=snapshot.elapsed_seconds,
        paused_seconds=snapshot.paused_seconds,
    )


@router.post("/timer/start", response_model=TimerStateOut)
def start_timer(payload: TimerStartRequest, machine: SessionStateMachine = Depends(get_machine)) -> TimerStateOut:
    return _state_out(machine.start(payload.task_id, payload.notes))


@router.post("/timer/pause", response_model=TimerStateOut)
def pause_timer(machine: SessionStateMachine = Depends(get_machine)) -> TimerStateOut:
    return _state_out(machine.pause())


@router.post("/timer/resume", response_model=TimerStateOut)
def resume_timer(machine: SessionStateMachine = Depends(get_machine)) -> TimerStateOut:
    return _state_out(machine.resume())


@router.post("/timer/stop", response_model=SessionOut)
def stop_timer(
    payload: TimerStopRequest | None = None,
    machine: SessionStateMachine = Depends(get_machine),
) -> SessionOut:
    return session_out(machine.stop(payload.notes if payload is not None else None))


@router.post("/timer/reset", response_model=TimerStateOut)
def reset_timer(machine: SessionStateMachine = Depends(get_machine)) -> TimerStateOut:
    return _state_out(machine.reset())


@router.get("/timer/state", response_model=TimerStateOut)
def timer_state(machine: SessionStateMachine = Depends(get_machine)) -> TimerStateOut:
    return _state_out(machine.snapshot())
