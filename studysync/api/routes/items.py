"""Item routes - list, create, edit and delete calendar items."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from studysync.api.deps import get_current_user_id, get_db
from studysync.core.logging import get_logger
from studysync.schemas.api import ItemCreate, ItemOut, ItemUpdate
from studysync.schemas.normalized import ItemSource
from studysync.services.item_store import ItemStore

router = APIRouter(prefix="/items", tags=["items"])
log = get_logger("item_routes")

# Columns that cannot be cleared with an explicit null
NON_NULLABLE_FIELDS = ("title", "item_type", "all_day", "status", "priority", "steps")


@router.get("", response_model=list[ItemOut])
def list_items(
    source: Optional[ItemSource] = Query(None, description="Filter by source"),
    limit: int = Query(100, ge=1, le=500, description="Number of items to return (max 500)"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Items of the calling user, earliest due date first."""
    store = ItemStore(db)
    items = store.list_items(user_id, source=source.value if source else None, limit=limit, offset=offset)
    return [ItemOut.model_validate(item) for item in items]


@router.post("", response_model=ItemOut, status_code=201)
def create_item(
    payload: ItemCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create a manual item. Manual items are never touched by sync."""
    store = ItemStore(db)
    item = store.create_manual_item(user_id, payload.model_dump())
    log.info(f"Created manual item {item.id} for user={user_id}")
    return ItemOut.model_validate(item)


@router.patch("/{item_id}", response_model=ItemOut)
def update_item(
    item_id: UUID,
    payload: ItemUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Apply a user edit.

    Changing ``status`` locks it: later syncs keep the user's status and
    completion time even when the provider reports a submission.
    """
    changes = payload.model_dump(exclude_unset=True)
    for field in NON_NULLABLE_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]

    store = ItemStore(db)
    item = store.update_item(user_id, item_id, changes)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    return ItemOut.model_validate(item)


@router.delete("/{item_id}", status_code=204)
def delete_item(
    item_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete an item. A synced item comes back on the next sync of its source."""
    store = ItemStore(db)
    if not store.delete_item(user_id, item_id):
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    return Response(status_code=204)
