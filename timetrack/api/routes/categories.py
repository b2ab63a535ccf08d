from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ...store import TimeTrackStore
from ..deps import get_store
from ..schemas import CategoryCreate, CategoryOut, category_out

router = APIRouter(prefix="/api/v1", tags=["categories"])


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(store: TimeTrackStore = Depends(get_store)) -> list[CategoryOut]:
    return [category_out(item) for item in store.categories.get_all()]


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryCreate, store: TimeTrackStore = Depends(get_store)) -> CategoryOut:
    category_id = store.categories.create(payload.name, payload.color)
    item = store.categories.get(category_id)
    if item is None:
        raise HTTPException(status_code=404, detail="category not found")
    return category_out(item)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, store: TimeTrackStore = Depends(get_store)) -> None:
    if not store.categories.delete(category_id):
        raise HTTPException(status_code=404, detail="category not found")
