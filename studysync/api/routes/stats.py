"""Stats routes - Sync audit trail and per-source summary."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studysync.api.deps import get_current_user_id, get_db
from studysync.schemas.api import SourceSummary, SyncLogOut
from studysync.services.data_service import DataService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=list[SyncLogOut])
def get_sync_stats(
    source: Optional[str] = Query(None, description="Filter by source"),
    status: Optional[Literal["success", "error"]] = Query(None, description="Filter by outcome"),
    limit: int = Query(10, ge=1, le=50, description="Number of sync runs to return"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Get the most recent sync runs, newest first.

    Shows items synced, outcome and the joined per-item errors.
    """
    service = DataService(db)
    logs = service.get_sync_logs(user_id, source=source, status=status, limit=limit)
    return [SyncLogOut.model_validate(entry) for entry in logs]


@router.get("/sources", response_model=list[SourceSummary])
def get_sources_summary(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Item count and last sync outcome for each source."""
    service = DataService(db)
    return service.get_sources_summary(user_id)
