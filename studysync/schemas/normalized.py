"""Unified normalized data model shared by every source adapter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ItemType(str, Enum):
    ASSIGNMENT = "assignment"
    TEST = "test"
    QUIZ = "quiz"
    ACTIVITY = "activity"
    TASK = "task"


class ItemSource(str, Enum):
    CANVAS = "canvas"
    CANVAS_CALENDAR = "canvas_calendar"
    GOOGLE_CLASSROOM = "google_classroom"
    GMAIL = "gmail"
    MANUAL = "manual"


SYNC_SOURCES = (
    ItemSource.CANVAS,
    ItemSource.CANVAS_CALENDAR,
    ItemSource.GOOGLE_CLASSROOM,
    ItemSource.GMAIL,
)


class ItemStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ItemPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EffortEstimate(str, Enum):
    TEN_MINUTES = "10m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    THREE_HOURS_PLUS = "3h+"


class MatchType(str, Enum):
    TITLE_CONTAINS = "title_contains"
    TITLE_PREFIX = "title_prefix"
    SOURCE_ID_PREFIX = "source_id_prefix"
    CONTEXT_CODE = "context_code"


class Step(BaseModel):
    id: str
    label: str
    done: bool = False


class NormalizedItem(BaseModel):
    """A deadline or event as produced by a source adapter, before persistence.

    ``status``/``completed_at`` are only set when the adapter inferred completion
    from a submission record, and ``context_code`` carries the provider course id
    used by context-code rules. Neither of the latter is stored as-is.
    """

    title: str
    description: Optional[str] = None
    item_type: ItemType = ItemType.ASSIGNMENT
    due_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    all_day: bool = False
    source: ItemSource
    source_id: str
    source_url: Optional[str] = None
    course_name: Optional[str] = None
    priority: ItemPriority = ItemPriority.MEDIUM
    effort_estimate: Optional[EffortEstimate] = None
    steps: List[Step] = Field(default_factory=list)

    status: Optional[ItemStatus] = None
    completed_at: Optional[datetime] = None
    context_code: Optional[str] = None


class TokenResponse(BaseModel):
    """Token endpoint payload (authorization-code or refresh-token grant)."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    token_type: Optional[str] = None
    scope: Optional[str] = None


class OAuthCredential(BaseModel):
    """Google credential embedded in the user profile.

    Connected-ness is derived from the refresh token: without one there is no
    way to mint access tokens, whatever else is stored.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_connected(self) -> bool:
        return bool(self.refresh_token)

    def expires_within(self, margin: timedelta, now: Optional[datetime] = None) -> bool:
        if not self.access_token or self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - margin <= now

    @classmethod
    def disconnected(cls) -> "OAuthCredential":
        return cls()
