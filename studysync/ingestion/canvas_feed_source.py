"""Canvas public calendar feed (iCalendar) source."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from ics import Calendar

from studysync.core.config import settings
from studysync.core.errors import SourceFetchError
from studysync.core.logging import get_logger
from studysync.ingestion.base import BaseSource, FetchResult
from studysync.ingestion.http import client_session
from studysync.schemas.normalized import ItemSource, ItemType, NormalizedItem
from studysync.schemas.raw import FeedEvent

log = get_logger("ingestion.canvas_feed")

# Evaluated in order; the first group with a hit decides the kind
KIND_KEYWORDS: List[Tuple[ItemType, re.Pattern]] = [
    (ItemType.QUIZ, re.compile(r"\bquiz", re.IGNORECASE)),
    (ItemType.TEST, re.compile(r"\b(test|exam|midterm|final)", re.IGNORECASE)),
    (ItemType.ASSIGNMENT, re.compile(r"\b(assignment|homework|due|submit)", re.IGNORECASE)),
    (ItemType.ACTIVITY, re.compile(r"\b(event|meeting|class|lecture)", re.IGNORECASE)),
]

_COLON_PREFIX_RE = re.compile(r"^([^:\[\]]+):\s*")
_BRACKET_PREFIX_RE = re.compile(r"^\[([^\]]+)\]\s*")
_URL_RE = re.compile(r"https?://[^\s<>\"]+")
_VEVENT_RE = re.compile(r"BEGIN:VEVENT\r?\n.*?END:VEVENT", re.IGNORECASE | re.DOTALL)
_UID_LINE_RE = re.compile(r"^UID[;:]", re.IGNORECASE | re.MULTILINE)


def infer_kind(event: FeedEvent) -> ItemType:
    text = " ".join([event.summary, event.description or "", " ".join(event.categories)])
    for kind, pattern in KIND_KEYWORDS:
        if pattern.search(text):
            return kind
    return ItemType.ASSIGNMENT


def split_course_prefix(summary: str) -> Tuple[Optional[str], str]:
    """Split ``"Course: Title"`` / ``"[Course] Title"`` into (course, title)."""
    for pattern in (_COLON_PREFIX_RE, _BRACKET_PREFIX_RE):
        match = pattern.match(summary)
        if match and match.group(1).strip():
            title = summary[match.end():].strip()
            if title:
                return match.group(1).strip(), title
    return None, summary


def _fill_missing_uids(document: str) -> str:
    """Give every UID-less VEVENT an id derived from its SUMMARY and DTSTART lines.

    ics invents a random UID for such events, which would change on every fetch.
    """

    def fill(match: re.Match) -> str:
        block = match.group(0)
        if _UID_LINE_RE.search(block):
            return block
        fields = sorted(line for line in block.splitlines() if line.upper().startswith(("SUMMARY", "DTSTART")))
        digest = hashlib.sha1("\n".join(fields).encode("utf-8")).hexdigest()[:16]
        newline = "\r\n" if "\r\n" in block else "\n"
        head, rest = block.split(newline, 1)
        return f"{head}{newline}UID:generated-{digest}{newline}{rest}"

    return _VEVENT_RE.sub(fill, document)


def parse_feed(document: str) -> List[FeedEvent]:
    """Parse an iCalendar document into feed events.

    Raises :class:`SourceFetchError` when the document is not valid iCalendar.
    """
    try:
        calendar = Calendar(_fill_missing_uids(document))
    except Exception as exc:  # noqa: BLE001
        raise SourceFetchError(f"Calendar feed could not be parsed: {exc}") from exc

    events: List[FeedEvent] = []
    for event in calendar.events:
        if event.begin is None:
            continue

        description = event.description or None
        url = event.url
        if not url and description:
            url_match = _URL_RE.search(description)
            url = url_match.group(0) if url_match else None

        events.append(
            FeedEvent(
                uid=event.uid,
                summary=event.name or "Untitled Event",
                description=description,
                location=event.location or None,
                url=url,
                categories=sorted(event.categories or []),
                start=BaseSource._parse_timestamp(event.begin.datetime),
                end=BaseSource._parse_timestamp(event.end.datetime) if event.end else None,
                all_day=bool(event.all_day),
            )
        )
    return events


class CanvasFeedSource(BaseSource):
    """Reads a user's Canvas calendar feed URL."""

    name = ItemSource.CANVAS_CALENDAR

    def __init__(self, feed_url: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self.feed_url = feed_url

    async def fetch(self) -> FetchResult:
        try:
            async with client_session(self.http_client) as client:
                resp = await client.get(self.feed_url)
                resp.raise_for_status()
                document = resp.text
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Failed to fetch calendar feed: {exc}") from exc

        events = parse_feed(document)
        cutoff = datetime.now(timezone.utc) - timedelta(days=settings.FEED_LOOKBACK_DAYS)
        relevant = [event for event in events if event.start >= cutoff]

        items = [self.to_item(event) for event in relevant]
        log.info(f"Parsed {len(events)} feed events, {len(items)} within the last {settings.FEED_LOOKBACK_DAYS} days or later")
        return FetchResult(items=items, meta={"feed_events": len(events), "relevant_events": len(relevant)})

    def to_item(self, event: FeedEvent) -> NormalizedItem:
        kind = infer_kind(event)
        course_name, title = split_course_prefix(event.summary)
        is_activity = kind == ItemType.ACTIVITY

        return NormalizedItem(
            title=title,
            description=event.description,
            item_type=kind,
            due_date=None if is_activity else event.start,
            start_time=event.start if is_activity else None,
            end_time=event.end if is_activity else None,
            all_day=event.all_day,
            source=self.name,
            source_id=f"ical_{event.uid}",
            source_url=event.url,
            course_name=course_name,
        )


def validate_feed_url(url: str) -> bool:
    """A feed URL must be https and look like a calendar export."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme == "https" and bool(parsed.netloc) and ("calendar" in url or url.endswith(".ics"))
