from __future__ import annotations

import platform

from fastapi import APIRouter, Depends

from ... import __version__
from ...store import TimeTrackStore
from ..deps import get_store
from ..schemas import MetaOut

router = APIRouter(prefix="/api/v1", tags=["system"])


@router.get("/meta", response_model=MetaOut)
def meta(store: TimeTrackStore = Depends(get_store)) -> MetaOut:
    return MetaOut(
        app="TimeTrack",
        version=__version__,
        db_path=str(store.db_path),
        platform=platform.platform(),
        open_status=store.status.value if store.status is not None else "closed",
        recreated=store.recreated,
    )
