from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..clock import Clock
from ..config import AppSettings, load_settings
from ..errors import (
    ConstraintViolation,
    SessionError,
    SessionNotFound,
    StorageUnavailable,
    StoreError,
    TaskNotFound,
    TimeTrackError,
    TransactionAlreadyActive,
    TransientStoreError,
    ValidationError,
)
from ..store import TimeTrackStore
from .routes.admin import router as admin_router
from .routes.categories import router as categories_router
from .routes.health import router as health_router
from .routes.meta import router as meta_router
from .routes.sessions import router as sessions_router
from .routes.tasks import router as tasks_router
from .routes.timer import router as timer_router
from .schemas import ErrorOut

logger = logging.getLogger(__name__)

# Checked in order; the first matching class decides the status code.
STATUS_BY_ERROR: list[tuple[type[TimeTrackError], int]] = [
    (TaskNotFound, 404),
    (SessionNotFound, 404),
    (ValidationError, 422),
    (ConstraintViolation, 409),
    (SessionError, 409),
    (TransactionAlreadyActive, 409),
    (TransientStoreError, 503),
    (StorageUnavailable, 503),
]


def status_for(exc: TimeTrackError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


async def _handle_domain_error(request: Request, exc: TimeTrackError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    kind = exc.kind.value if isinstance(exc, StoreError) else None
    return JSONResponse(
        status_code=status,
        content=ErrorOut(error=type(exc).__name__, kind=kind, detail=str(exc)).model_dump(),
    )


def create_app(
    db_path: Path | None = None,
    settings: AppSettings | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    store = TimeTrackStore(db_path=db_path, settings=settings, clock=clock)
    store.open()
    if store.recreated:
        logger.warning("serving a freshly recreated database at %s", store.db_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            store.close()

    app = FastAPI(title="TimeTrack API", version=__version__, lifespan=lifespan)
    app.state.store = store
    app.state.machine = store.session_machine(restore=True)
    app.state.db_path = str(store.db_path)

    app.add_exception_handler(TimeTrackError, _handle_domain_error)

    app.include_router(health_router)
    app.include_router(meta_router)
    app.include_router(tasks_router)
    app.include_router(categories_router)
    app.include_router(sessions_router)
    app.include_router(timer_router)
    app.include_router(admin_router)

    return app


def create_default_app() -> FastAPI:
    """Factory for ``uvicorn --factory timetrack.api.app:create_default_app``."""
    settings = load_settings()
    return create_app(settings=settings)
