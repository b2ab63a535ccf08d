from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...errors import ValidationError
from ...store import TimeTrackStore
from ..deps import get_store
from ..schemas import ResetOut, ResetRequest

router = APIRouter(prefix="/api/v1/admin", tags=["system"])


@router.post("/reset", response_model=ResetOut)
def reset_database(
    payload: ResetRequest,
    request: Request,
    store: TimeTrackStore = Depends(get_store),
) -> ResetOut:
    if not payload.confirm:
        raise ValidationError("reset deletes every task, category and session; send confirm=true")
    status = store.reset()
    request.app.state.machine = store.session_machine(restore=False)
    return ResetOut(db_path=str(store.db_path), open_status=status.value)
