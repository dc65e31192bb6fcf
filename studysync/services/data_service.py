"""Data Service - read-only queries behind the stats and health endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studysync.core.logging import get_logger
from studysync.models.items import CalendarItem
from studysync.models.sync_logs import SyncLog
from studysync.schemas.normalized import SYNC_SOURCES, ItemSource

log = get_logger("data_service")


class DataService:
    """Handles all data query operations - reads from DB only, no writes."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Sync Audit Queries
    # -------------------------------------------------------------------------
    def get_sync_logs(
        self,
        user_id: str,
        source: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
    ) -> List[SyncLog]:
        """Get recent sync audit rows with optional filtering."""
        stmt = select(SyncLog).where(SyncLog.user_id == user_id)

        if source:
            stmt = stmt.where(SyncLog.source == source)
        if status:
            stmt = stmt.where(SyncLog.status == status)

        stmt = stmt.order_by(SyncLog.synced_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_latest_sync(self, user_id: Optional[str] = None, source: Optional[str] = None) -> Optional[SyncLog]:
        """Get the most recent sync audit row."""
        stmt = select(SyncLog)
        if user_id:
            stmt = stmt.where(SyncLog.user_id == user_id)
        if source:
            stmt = stmt.where(SyncLog.source == source)
        stmt = stmt.order_by(SyncLog.synced_at.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Item Counts
    # -------------------------------------------------------------------------
    def get_item_count(self, user_id: str, source: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(CalendarItem).where(CalendarItem.user_id == user_id)
        if source:
            stmt = stmt.where(CalendarItem.source == source)
        return self.db.execute(stmt).scalar() or 0

    def get_sources_summary(self, user_id: str) -> List[Dict[str, Any]]:
        """Get item count and last sync outcome per source."""
        summary = []

        for source in (*SYNC_SOURCES, ItemSource.MANUAL):
            latest = self.get_latest_sync(user_id, source.value)
            summary.append({
                "source": source.value,
                "item_count": self.get_item_count(user_id, source.value),
                "last_sync_status": latest.status if latest else None,
                "last_synced_at": latest.synced_at if latest else None,
            })

        return summary
