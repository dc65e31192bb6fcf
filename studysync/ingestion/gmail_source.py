"""Gmail source: turns Canvas notification emails into items."""

from __future__ import annotations

import asyncio
import base64
import binascii
import html
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import httpx
from dateutil import parser as date_parser
from pydantic import ValidationError

from studysync.core.config import settings
from studysync.core.errors import SourceFetchError
from studysync.core.logging import get_logger
from studysync.ingestion.base import BaseSource, FetchResult
from studysync.ingestion.http import bearer, client_session, get_json
from studysync.schemas.normalized import ItemSource, ItemType, NormalizedItem
from studysync.schemas.raw import GmailMessage, GmailPart

log = get_logger("ingestion.gmail")

TEXT_MIME_TYPES = ("text/plain", "text/html")
MAILBOX_URL = "https://mail.google.com/mail/u/0/#inbox/{message_id}"

_QUIZ_RE = re.compile(r"quiz", re.IGNORECASE)
_TEST_RE = re.compile(r"\b(test|exam|midterm|final)\b", re.IGNORECASE)
_DUE_RE = re.compile(
    r"due[:\s]+(\w+\s+\d{1,2},?\s+\d{4}(?:\s+at\s+\d{1,2}:\d{2}\s*(?:AM|PM)?)?)",
    re.IGNORECASE,
)
_SUBJECT_TAG_RE = re.compile(r"\[(.+?)\]")
_BODY_COURSE_RE = re.compile(r"\bcourse:\s*([^\n<]+)", re.IGNORECASE)
_REPLY_PREFIX_RE = re.compile(r"^\s*((re|fwd?):\s*)+", re.IGNORECASE)


def decode_base64url(data: Optional[str]) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def _first_text_part(parts: Iterable[GmailPart]) -> Optional[GmailPart]:
    for part in parts:
        if part.mimeType in TEXT_MIME_TYPES and part.body and part.body.data:
            return part
        nested = _first_text_part(part.parts)
        if nested:
            return nested
    return None


def message_body(message: GmailMessage) -> str:
    """Body of the first text part, or of the payload itself, unescaped."""
    part = _first_text_part(message.payload.parts)
    if part is not None:
        return html.unescape(decode_base64url(part.body.data))
    if message.payload.body and message.payload.body.data:
        return html.unescape(decode_base64url(message.payload.body.data))
    return ""


def clean_subject(subject: str) -> str:
    title = _SUBJECT_TAG_RE.sub("", subject)
    title = _REPLY_PREFIX_RE.sub("", title.strip())
    return " ".join(title.split())


def infer_kind(subject: str, body: str) -> ItemType:
    text = f"{subject}\n{body}"
    if _TEST_RE.search(text):
        return ItemType.TEST
    if _QUIZ_RE.search(text):
        return ItemType.QUIZ
    return ItemType.ASSIGNMENT


def parse_due_date(body: str) -> Optional[datetime]:
    match = _DUE_RE.search(body)
    if not match:
        return None
    text = re.sub(r"\s+at\s+", " ", match.group(1), flags=re.IGNORECASE)
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        log.debug(f"Could not parse due date {match.group(1)!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def extract_course(subject: str, body: str) -> Optional[str]:
    match = _SUBJECT_TAG_RE.search(subject) or _BODY_COURSE_RE.search(body)
    if not match:
        return None
    return match.group(1).strip() or None


def parse_notification(message: GmailMessage) -> Optional[NormalizedItem]:
    """Build an item from one notification email, or None without a usable title."""
    subject = message.header("Subject") or ""
    title = clean_subject(subject)
    if not title:
        return None

    body = message_body(message)
    return NormalizedItem(
        title=title,
        description=html.unescape(message.snippet) if message.snippet else None,
        item_type=infer_kind(subject, body),
        due_date=parse_due_date(body),
        all_day=False,
        source=ItemSource.GMAIL,
        source_id=message.id,
        source_url=MAILBOX_URL.format(message_id=message.id),
        course_name=extract_course(subject, body),
    )


class GmailSource(BaseSource):
    """Searches the mailbox for notification senders and parses each hit."""

    name = ItemSource.GMAIL

    def __init__(self, access_token: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self.access_token = access_token

    @property
    def query(self) -> str:
        return " OR ".join(f"from:{sender}" for sender in settings.GMAIL_NOTIFICATION_SENDERS)

    async def fetch(self) -> FetchResult:
        headers = bearer(self.access_token)
        async with client_session(self.http_client) as client:
            try:
                listing = await get_json(
                    client,
                    f"{settings.GMAIL_API_BASE}/users/me/messages",
                    headers=headers,
                    params={"q": self.query, "maxResults": 50},
                )
            except httpx.HTTPError as exc:
                raise SourceFetchError(f"Failed to search emails: {exc}") from exc
            if not isinstance(listing, dict):
                raise SourceFetchError("Gmail search returned an unexpected payload")

            ids = [entry["id"] for entry in listing.get("messages") or [] if entry.get("id")]
            ids = ids[: settings.GMAIL_MAX_MESSAGES]
            messages = await asyncio.gather(*(self._message(client, headers, message_id) for message_id in ids))

        items: List[NormalizedItem] = []
        dropped = 0
        for message in messages:
            if message is None:
                continue
            item = parse_notification(message)
            if item is None:
                dropped += 1
                continue
            items.append(item)

        log.info(f"Parsed {len(items)} items from {len(ids)} notification emails")
        return FetchResult(items=items, meta={"messages": len(ids), "dropped": dropped})

    async def _message(self, client: httpx.AsyncClient, headers, message_id: str) -> Optional[GmailMessage]:
        try:
            raw = await get_json(
                client,
                f"{settings.GMAIL_API_BASE}/users/me/messages/{message_id}",
                headers=headers,
                params={"format": "full"},
            )
            return GmailMessage.model_validate(raw)
        except (httpx.HTTPError, ValidationError) as exc:
            log.error(f"Failed to fetch message {message_id}: {exc}")
            return None
