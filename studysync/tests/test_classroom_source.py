"""Google Classroom source tests"""

from datetime import datetime, timezone

import httpx
import pytest

from studysync.core.errors import SourceFetchError
from studysync.ingestion.classroom_source import ClassroomSource
from studysync.schemas.normalized import ItemSource, ItemType
from studysync.schemas.raw import ClassroomCourseWork
from studysync.tests.helpers import html_response, json_response, mock_client


def work(**fields):
    payload = {"id": "w1", "courseId": "c1", "title": "Worksheet", "state": "PUBLISHED"}
    payload.update(fields)
    return payload


class FakeClassroom:
    def __init__(self, courses, course_work):
        self.courses = courses
        self.course_work = course_work
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers["Authorization"] == "Bearer google-access"
        path = request.url.path
        if path == "/v1/courses":
            return self.courses(request) if callable(self.courses) else json_response({"courses": self.courses})
        course_id = path.split("/")[3]
        entry = self.course_work.get(course_id, [])
        if isinstance(entry, httpx.Response):
            return entry
        return json_response({"courseWork": entry})


def source_for(fake, tz="UTC"):
    return ClassroomSource("google-access", user_timezone=tz, http_client=mock_client(fake))


class TestClassroomFetch:
    """Test course fan-out and publishing filter"""

    @pytest.mark.asyncio
    async def test_only_published_work_is_kept(self):
        fake = FakeClassroom(
            [{"id": "c1", "name": "Physics"}],
            {
                "c1": [
                    work(id="w1", title="Lab"),
                    work(id="w2", title="Draft", state="DRAFT"),
                ]
            },
        )

        result = await source_for(fake).fetch()

        assert [item.source_id for item in result.items] == ["c1_w1"]
        item = result.items[0]
        assert item.source == ItemSource.GOOGLE_CLASSROOM
        assert item.course_name == "Physics"
        assert result.meta == {"courses": 1, "unpublished_skipped": 1}

    @pytest.mark.asyncio
    async def test_courses_are_paginated_by_token(self):
        def courses(request):
            if request.url.params.get("pageToken") == "p2":
                return json_response({"courses": [{"id": "c2", "name": "Art"}]})
            assert request.url.params["courseStates"] == "ACTIVE"
            return json_response({"courses": [{"id": "c1", "name": "Physics"}], "nextPageToken": "p2"})

        fake = FakeClassroom(courses, {"c1": [work(courseId="c1")], "c2": [work(id="w9", courseId="c2")]})

        result = await source_for(fake).fetch()

        assert sorted(item.source_id for item in result.items) == ["c1_w1", "c2_w9"]

    @pytest.mark.asyncio
    async def test_failing_course_is_isolated(self):
        fake = FakeClassroom(
            [{"id": "c1", "name": "Physics"}, {"id": "c2", "name": "Art"}],
            {"c1": httpx.Response(403), "c2": [work(id="w5", courseId="c2")]},
        )

        result = await source_for(fake).fetch()

        assert [item.source_id for item in result.items] == ["c2_w5"]

    @pytest.mark.asyncio
    async def test_non_json_course_is_isolated(self):
        fake = FakeClassroom(
            [{"id": "c1", "name": "Physics"}, {"id": "c2", "name": "Art"}],
            {"c1": html_response(), "c2": [work(id="w5", courseId="c2")]},
        )

        result = await source_for(fake).fetch()

        assert [item.source_id for item in result.items] == ["c2_w5"]

    @pytest.mark.asyncio
    async def test_course_listing_failure_is_fatal(self):
        fake = FakeClassroom(lambda request: httpx.Response(401), {})
        with pytest.raises(SourceFetchError):
            await source_for(fake).fetch()


class TestDueDates:
    """Test structured due date conversion"""

    def convert(self, tz="UTC", **fields):
        return ClassroomSource("t", user_timezone=tz).due_datetime(ClassroomCourseWork(**work(**fields)))

    def test_missing_due_time_is_end_of_day(self):
        due = self.convert(dueDate={"year": 2026, "month": 11, "day": 3})
        assert due == datetime(2026, 11, 3, 23, 59, tzinfo=timezone.utc)

    def test_omitted_minutes_are_zero(self):
        due = self.convert(dueDate={"year": 2026, "month": 11, "day": 3}, dueTime={"hours": 15})
        assert due == datetime(2026, 11, 3, 15, 0, tzinfo=timezone.utc)

    def test_user_timezone_is_applied(self):
        due = self.convert(
            tz="America/New_York",
            dueDate={"year": 2026, "month": 7, "day": 1},
            dueTime={"hours": 9, "minutes": 30},
        )
        assert due == datetime(2026, 7, 1, 13, 30, tzinfo=timezone.utc)

    def test_unknown_timezone_falls_back_to_utc(self):
        due = self.convert(tz="Mars/Olympus", dueDate={"year": 2026, "month": 11, "day": 3}, dueTime={"hours": 8})
        assert due == datetime(2026, 11, 3, 8, 0, tzinfo=timezone.utc)

    def test_no_due_date(self):
        assert self.convert() is None


class TestKinds:
    def test_question_types_are_quizzes(self):
        source = ClassroomSource("t")
        quiz = source.to_item(ClassroomCourseWork(**work(workType="MULTIPLE_CHOICE_QUESTION")), "Physics")
        assignment = source.to_item(ClassroomCourseWork(**work(workType="ASSIGNMENT")), "Physics")
        assert quiz.item_type == ItemType.QUIZ
        assert assignment.item_type == ItemType.ASSIGNMENT
