"""Gmail notification source tests"""

import base64
from datetime import datetime, timezone

import httpx
import pytest

from studysync.core.errors import SourceFetchError
from studysync.ingestion.gmail_source import (
    GmailSource,
    clean_subject,
    decode_base64url,
    extract_course,
    infer_kind,
    message_body,
    parse_due_date,
    parse_notification,
)
from studysync.schemas.normalized import ItemSource, ItemType
from studysync.schemas.raw import GmailMessage
from studysync.tests.helpers import html_response, json_response, mock_client

MESSAGES_PATH = "/gmail/v1/users/me/messages"


def encode(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def message(message_id="m1", subject="Assignment Created - Lab 5", body="", snippet=None, html_part=False):
    mime = "text/html" if html_part else "text/plain"
    return {
        "id": message_id,
        "snippet": snippet,
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "Subject", "value": subject}, {"name": "From", "value": "notifications@instructure.com"}],
            "parts": [
                {"mimeType": "multipart/related", "parts": [{"mimeType": mime, "body": {"data": encode(body)}}]},
            ],
        },
    }


class TestBodyDecoding:
    def test_unpadded_base64url(self):
        assert decode_base64url(encode("Due: Nov 3")) == "Due: Nov 3"

    def test_invalid_data_is_empty(self):
        assert decode_base64url("!!!") == ""
        assert decode_base64url(None) == ""

    def test_nested_part_is_found_and_unescaped(self):
        parsed = GmailMessage.model_validate(message(body="Lab &amp; report", html_part=True))
        assert message_body(parsed) == "Lab & report"

    def test_single_part_payload(self):
        parsed = GmailMessage.model_validate(
            {"id": "m1", "payload": {"mimeType": "text/plain", "body": {"data": encode("plain body")}}}
        )
        assert message_body(parsed) == "plain body"


class TestSubjectAndCourse:
    def test_clean_subject_strips_tags_and_reply_prefixes(self):
        assert clean_subject("Re: Fwd: [BIO101] Assignment Created - Lab 5") == "Assignment Created - Lab 5"
        assert clean_subject("FW: Quiz  reminder") == "Quiz reminder"

    def test_course_from_subject_tag(self):
        assert extract_course("[BIO101] Lab 5", "Course: Ignored") == "BIO101"

    def test_course_from_body(self):
        assert extract_course("Lab 5", "Hello\nCourse: Biology 101\nThanks") == "Biology 101"

    def test_no_course(self):
        assert extract_course("Lab 5", "No hints here") is None


class TestKindAndDueDate:
    def test_test_keywords_win_over_quiz(self):
        assert infer_kind("Quiz on the final chapters", "") == ItemType.TEST

    def test_quiz(self):
        assert infer_kind("Quiz 3 available", "") == ItemType.QUIZ

    def test_default_assignment(self):
        assert infer_kind("Lab 5", "Submit your report") == ItemType.ASSIGNMENT

    def test_due_date_with_time(self):
        due = parse_due_date("Lab 5 is due: Nov 3, 2026 at 11:59 PM. Good luck")
        assert due == datetime(2026, 11, 3, 23, 59, tzinfo=timezone.utc)

    def test_due_date_without_time(self):
        assert parse_due_date("Due November 3 2026") == datetime(2026, 11, 3, tzinfo=timezone.utc)

    def test_no_due_date(self):
        assert parse_due_date("Nothing scheduled") is None


class TestParseNotification:
    def test_full_notification(self):
        parsed = GmailMessage.model_validate(
            message(
                subject="[CHEM] Midterm exam posted",
                body="Due: Dec 1, 2026 at 9:00 AM",
                snippet="Your midterm &quot;Unit 2&quot; is ready",
            )
        )

        item = parse_notification(parsed)

        assert item.title == "Midterm exam posted"
        assert item.item_type == ItemType.TEST
        assert item.course_name == "CHEM"
        assert item.due_date == datetime(2026, 12, 1, 9, 0, tzinfo=timezone.utc)
        assert item.description == 'Your midterm "Unit 2" is ready'
        assert item.source == ItemSource.GMAIL
        assert item.source_id == "m1"
        assert item.source_url == "https://mail.google.com/mail/u/0/#inbox/m1"

    def test_empty_title_is_dropped(self):
        assert parse_notification(GmailMessage.model_validate(message(subject="[BIO101]"))) is None


class TestGmailFetch:
    """Test mailbox search and per-message isolation"""

    @pytest.mark.asyncio
    async def test_fetch_skips_failed_and_untitled_messages(self):
        payloads = {
            "m1": message("m1", subject="Quiz 2 available"),
            "m2": message("m2", subject="[ART]"),
        }
        seen_query = {}

        def handler(request):
            path = request.url.path
            if path == MESSAGES_PATH:
                seen_query.update(request.url.params)
                return json_response({"messages": [{"id": "m1"}, {"id": "m2"}, {"id": "m3"}]})
            message_id = path.rsplit("/", 1)[-1]
            assert request.url.params["format"] == "full"
            if message_id in payloads:
                return json_response(payloads[message_id])
            return httpx.Response(500)

        source = GmailSource("google-access", http_client=mock_client(handler))
        result = await source.fetch()

        assert [item.source_id for item in result.items] == ["m1"]
        assert result.items[0].item_type == ItemType.QUIZ
        assert result.meta == {"messages": 3, "dropped": 1}
        assert "from:notifications@instructure.com" in seen_query["q"]

    @pytest.mark.asyncio
    async def test_non_json_message_is_skipped(self):
        def handler(request):
            path = request.url.path
            if path == MESSAGES_PATH:
                return json_response({"messages": [{"id": "a"}, {"id": "b"}]})
            if path.endswith("/a"):
                return html_response()
            return json_response(message("b", subject="Assignment Created - Essay"))

        result = await GmailSource("google-access", http_client=mock_client(handler)).fetch()

        assert [item.source_id for item in result.items] == ["b"]

    @pytest.mark.asyncio
    async def test_empty_mailbox(self):
        source = GmailSource("google-access", http_client=mock_client(lambda request: json_response({})))
        result = await source.fetch()
        assert result.items == []

    @pytest.mark.asyncio
    async def test_search_failure_is_fatal(self):
        source = GmailSource("google-access", http_client=mock_client(lambda request: httpx.Response(401)))
        with pytest.raises(SourceFetchError):
            await source.fetch()
