from __future__ import annotations

from fastapi import APIRouter, Depends

from ...errors import SessionNotFound
from ...store import TimeTrackStore
from ..deps import get_store
from ..schemas import SessionOut, SummaryOut, session_out, summary_out

router = APIRouter(prefix="/api/v1", tags=["sessions"])


@router.get("/sessions", response_model=list[SessionOut])
def list_sessions(task_id: int | None = None, store: TimeTrackStore = Depends(get_store)) -> list[SessionOut]:
    if task_id is None:
        items = store.sessions.get_all()
    else:
        items = store.sessions.get_for_task(task_id)
    return [session_out(item) for item in items]


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(session_id: int, store: TimeTrackStore = Depends(get_store)) -> SessionOut:
    item = store.sessions.get(session_id)
    if item is None:
        raise SessionNotFound(session_id)
    return session_out(item)


@router.get("/summary", response_model=list[SummaryOut])
def summary(store: TimeTrackStore = Depends(get_store)) -> list[SummaryOut]:
    return [summary_out(item) for item in store.sessions.summary()]
