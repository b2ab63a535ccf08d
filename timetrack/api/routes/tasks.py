from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from ...errors import TaskNotFound
from ...session_machine import SessionStateMachine
from ...store import TimeTrackStore
from ..deps import get_machine, get_store
from ..schemas import CategoryAssign, CompletionUpdate, TagsUpdate, TaskCreate, TaskOut, task_out

router = APIRouter(prefix="/api/v1", tags=["tasks"])


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks(
    is_complete: bool | None = Query(default=None),
    store: TimeTrackStore = Depends(get_store),
) -> list[TaskOut]:
    if is_complete is None:
        items = store.tasks.get_all()
    else:
        items = store.tasks.filter_by_completion(is_complete)
    return [task_out(item) for item in items]


@router.post("/tasks", response_model=TaskOut, status_code=201)
def create_task(payload: TaskCreate, store: TimeTrackStore = Depends(get_store)) -> TaskOut:
    task_id = store.tasks.create(payload.name, category_id=payload.category_id, tags=payload.tags)
    return _load(store, task_id)


@router.get("/tasks/{task_id}", response_model=TaskOut)
def get_task(task_id: int, store: TimeTrackStore = Depends(get_store)) -> TaskOut:
    return _load(store, task_id)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
    task_id: int,
    store: TimeTrackStore = Depends(get_store),
    machine: SessionStateMachine = Depends(get_machine),
) -> None:
    if not store.tasks.delete(task_id):
        raise HTTPException(status_code=404, detail="task not found")
    if machine.task_id == task_id:
        machine.refresh()


@router.put("/tasks/{task_id}/tags", response_model=TaskOut)
def replace_tags(task_id: int, payload: TagsUpdate, store: TimeTrackStore = Depends(get_store)) -> TaskOut:
    store.tasks.replace_tags(task_id, payload.tags)
    return _load(store, task_id)


@router.put("/tasks/{task_id}/category", response_model=TaskOut)
def assign_category(
    task_id: int,
    payload: CategoryAssign,
    store: TimeTrackStore = Depends(get_store),
) -> TaskOut:
    store.tasks.set_category(task_id, payload.category_id)
    return _load(store, task_id)


@router.put("/tasks/{task_id}/complete", response_model=TaskOut)
def set_complete(
    task_id: int,
    payload: CompletionUpdate,
    store: TimeTrackStore = Depends(get_store),
) -> TaskOut:
    store.tasks.set_complete(task_id, payload.is_complete)
    return _load(store, task_id)


def _load(store: TimeTrackStore, task_id: int) -> TaskOut:
    item = store.tasks.get(task_id)
    if item is None:
        raise TaskNotFound(task_id)
    return task_out(item)
