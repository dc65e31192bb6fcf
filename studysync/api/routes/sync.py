"""Sync routes - Trigger a sync for one source or for all of them."""

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from studysync.api.deps import get_current_user_id, get_db, get_http_client
from studysync.core.errors import SyncError
from studysync.core.logging import get_logger
from studysync.schemas.api import SyncAllResponse, SyncResult
from studysync.schemas.normalized import ItemSource
from studysync.services.sync_service import SyncService

router = APIRouter(prefix="/sync", tags=["sync"])
log = get_logger("sync_routes")


@router.post("/all", response_model=SyncAllResponse)
async def trigger_sync_all(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Sync every source for the calling user.

    Sources run one after another and independently; sources without
    credentials are reported as skipped rather than failing the call.
    """
    log.info(f"Sync triggered for all sources user={user_id}")

    service = SyncService(db, http_client=http_client)
    results = await service.run_all(user_id)
    return SyncAllResponse(results=results)


@router.post("/{source}", response_model=SyncResult)
async def trigger_sync(
    source: ItemSource,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Run the sync pipeline for one source:
    1. Resolve credentials (400 when missing, 401 when Google must be reconnected)
    2. Fetch and normalize items (502 when the provider is unreachable)
    3. Categorize and upsert every item independently
    4. Record one sync log entry

    Per-item failures do not fail the call; they come back as ``warnings``.
    """
    if source == ItemSource.MANUAL:
        raise HTTPException(status_code=400, detail="Manual items are not synced")

    log.info(f"Sync triggered for source={source.value} user={user_id}")

    service = SyncService(db, http_client=http_client)
    try:
        return await service.run(user_id, source)
    except SyncError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
