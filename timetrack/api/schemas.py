from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..models import Category, SessionRecord, SessionSummary, TaskItem


class HealthOut(BaseModel):
    status: str = Field(default="ok")


class MetaOut(BaseModel):
    app: str
    version: str
    db_path: str
    platform: str
    open_status: str
    recreated: bool


class ResetRequest(BaseModel):
    confirm: bool = False


class ResetOut(BaseModel):
    db_path: str
    open_status: str


class ErrorOut(BaseModel):
    error: str
    kind: str | None = None
    detail: str


class TaskCreate(BaseModel):
    name: str
    category_id: int | None = None
    tags: list[str] = Field(default_factory=list)


class TaskOut(BaseModel):
    id: int
    name: str
    is_complete: bool
    category_id: int | None = None
    category_name: str | None = None
    created_at: datetime
    tags: list[str]


class TagsUpdate(BaseModel):
    tags: list[str] = Field(default_factory=list)


class CategoryAssign(BaseModel):
    category_id: int | None = None


class CompletionUpdate(BaseModel):
    is_complete: bool = True


class CategoryCreate(BaseModel):
    name: str
    color: str = "#FFFFFF"


class CategoryOut(BaseModel):
    id: int
    name: str
    color: str


class SessionOut(BaseModel):
    id: int
    task_id: int
    start_time: datetime
    end_time: datetime | None = None
    duration_sec: int | None = None
    notes: str | None = None
    state: str


class SummaryOut(BaseModel):
    task_id: int
    task_name: str
    category_name: str | None = None
    session_count: int
    total_seconds: int


class TimerStartRequest(BaseModel):
    task_id: int | None = None
    notes: str | None = None


class TimerStopRequest(BaseModel):
    notes: str | None = None


class TimerStateOut(BaseModel):
    state: str
    session_id: int | None = None
    task_id: int | None = None
    start_time: datetime | None = None
    elapsed_seconds: float
    paused_seconds: float


def task_out(item: TaskItem) -> TaskOut:
    return TaskOut(
        id=item.id,
        name=item.name,
        is_complete=item.is_complete,
        category_id=item.category_id,
        category_name=item.category_name,
        created_at=item.created_at,
        tags=list(item.tags),
    )


def category_out(item: Category) -> CategoryOut:
    return CategoryOut(id=item.id, name=item.name, color=item.color)


def session_out(item: SessionRecord) -> SessionOut:
    duration = item.duration
    return SessionOut(
        id=item.id,
        task_id=item.task_id,
        start_time=item.start_time,
        end_time=item.end_time,
        duration_sec=int(round(duration.total_seconds())) if duration is not None else None,
        notes=item.notes,
        state=item.state.value,
    )


def summary_out(item: SessionSummary) -> SummaryOut:
    return SummaryOut(**vars(item))
