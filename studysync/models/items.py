"""Canonical per-user item table - one row per (user, source, external id)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studysync.models.base import Base, JSONType


class CalendarItem(Base):
    """A deadline or event owned by one user.

    Rows synced from a provider are keyed by ``(user_id, source, source_id)``;
    manual rows have ``source="manual"`` and no ``source_id``.
    ``status_locked`` is set once the user changes ``status`` directly, after
    which sync no longer touches ``status`` or ``completed_at``.
    """

    __tablename__ = "calendar_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False, default="assignment")

    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    all_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Source tracking
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    course_name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # User-owned fields, never written by sync after the first insert
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    effort_estimate: Mapped[str | None] = mapped_column(String(10), nullable=True)
    steps: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (UniqueConstraint("user_id", "source", "source_id", name="uq_calendar_items_user_source_id"),)
