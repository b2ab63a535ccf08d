from __future__ import annotations

from fastapi import Request

from ..session_machine import SessionStateMachine
from ..store import TimeTrackStore


def get_store(request: Request) -> TimeTrackStore:
    return request.app.state.store


def get_machine(request: Request) -> SessionStateMachine:
    return request.app.state.machine
