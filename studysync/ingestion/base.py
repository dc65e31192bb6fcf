"""Abstract source interface for ingestion."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from studysync.core.logging import get_logger
from studysync.schemas.normalized import ItemSource, NormalizedItem

log = get_logger("ingestion")

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class FetchResult:
    """What one adapter run hands back to the orchestrator.

    ``context_codes`` maps provider context codes (``course_123``) to course
    names and ``course_codes`` maps short course codes to names; both feed
    categorization. ``meta`` ends up in the sync audit row.
    """

    items: List[NormalizedItem] = field(default_factory=list)
    context_codes: Dict[str, str] = field(default_factory=dict)
    course_codes: Dict[str, str] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)


class BaseSource(ABC):
    """Abstract base class for item sources."""

    name: ItemSource

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.http_client = http_client

    @abstractmethod
    async def fetch(self) -> FetchResult:
        """Fetch and normalize every item the source currently exposes."""

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[datetime]:
        if not value:
            return None
        try:
            if isinstance(value, str):
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    value = value.replace(tzinfo=timezone.utc)
                return value.astimezone(timezone.utc)
        except ValueError:
            return None
        return None


def parse_records(model: Type[ModelT], raw: List[Any]) -> List[ModelT]:
    """Validate a list of provider records, skipping the malformed ones."""
    parsed: List[ModelT] = []
    for record in raw:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as exc:
            log.warning(f"Skipping malformed {model.__name__} record: {exc.error_count()} validation error(s)")
    return parsed
