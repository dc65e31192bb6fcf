"""Append-only audit trail, one row per orchestrator run."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studysync.models.base import Base, JSONType


class SyncLog(Base):
    __tablename__ = "sync_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    source: Mapped[str] = mapped_column(String(32), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,  # success | error
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    items_synced: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # "metadata" attribute name is reserved by SQLAlchemy; use column name metadata with safe attribute.
    meta: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)

    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_sync_logs_user_source_synced", "user_id", "source", "synced_at"),)
