from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from studysync.schemas.normalized import (
    EffortEstimate,
    ItemPriority,
    ItemStatus,
    ItemType,
    MatchType,
    Step,
)


class SyncResult(BaseModel):
    """Outcome of one orchestrator run for one source."""

    success: bool
    source: str
    items_synced: int = 0
    total_items: int = 0
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class SyncAllResponse(BaseModel):
    results: dict[str, SyncResult]


class SyncLogOut(BaseModel):
    id: UUID
    source: str
    status: str
    error_message: str | None = None
    items_synced: int
    meta: dict[str, Any] | None = None
    synced_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SourceSummary(BaseModel):
    source: str
    item_count: int
    last_sync_status: str | None = None
    last_synced_at: datetime | None = None


class ItemOut(BaseModel):
    id: UUID
    title: str
    description: str | None = None
    item_type: str
    due_date: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    all_day: bool
    source: str
    source_id: str | None = None
    source_url: str | None = None
    course_name: str | None = None
    status: str
    completed_at: datetime | None = None
    status_locked: bool
    priority: str
    notes: str | None = None
    effort_estimate: str | None = None
    steps: list[Step] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ItemCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    item_type: ItemType = ItemType.TASK
    due_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: bool = False
    source_url: Optional[str] = None
    course_name: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    priority: ItemPriority = ItemPriority.MEDIUM
    notes: Optional[str] = None
    effort_estimate: Optional[EffortEstimate] = None
    steps: list[Step] = Field(default_factory=list)


class ItemUpdate(BaseModel):
    """Partial user edit; only fields present in the request are applied."""

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    item_type: Optional[ItemType] = None
    due_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: Optional[bool] = None
    course_name: Optional[str] = None
    status: Optional[ItemStatus] = None
    completed_at: Optional[datetime] = None
    priority: Optional[ItemPriority] = None
    notes: Optional[str] = None
    effort_estimate: Optional[EffortEstimate] = None
    steps: Optional[list[Step]] = None


class RuleIn(BaseModel):
    match_type: MatchType
    match_value: str = Field(min_length=1)
    course_name: str = Field(min_length=1)


class RuleOut(BaseModel):
    id: UUID
    match_type: str
    match_value: str
    course_name: str
    auto_generated: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SuggestionOut(BaseModel):
    item_id: UUID
    title: str
    suggested_course: str


class IntegrationStatus(BaseModel):
    provider: str
    connected: bool


class HealthResponse(BaseModel):
    database: str
    last_sync_status: str | None
    google_oauth: str


class CanvasCredentialsIn(BaseModel):
    base_url: str = Field(min_length=1)
    token: str = Field(min_length=1)


class CalendarFeedIn(BaseModel):
    url: str = Field(min_length=1)
