"""Google Classroom coursework source."""

from __future__ import annotations

import asyncio
from datetime import datetime, time, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from studysync.core.config import settings
from studysync.core.errors import SourceFetchError
from studysync.core.logging import get_logger
from studysync.ingestion.base import BaseSource, FetchResult, parse_records
from studysync.ingestion.http import bearer, client_session, get_token_paginated
from studysync.schemas.normalized import ItemSource, ItemType, NormalizedItem
from studysync.schemas.raw import ClassroomCourse, ClassroomCourseWork

log = get_logger("ingestion.classroom")

QUIZ_WORK_TYPES = {"SHORT_ANSWER_QUESTION", "MULTIPLE_CHOICE_QUESTION"}
PUBLISHED = "PUBLISHED"
DEFAULT_DUE_TIME = time(23, 59)


class ClassroomSource(BaseSource):
    """Fetches published coursework from every active Classroom course."""

    name = ItemSource.GOOGLE_CLASSROOM

    def __init__(
        self,
        access_token: str,
        user_timezone: str = "UTC",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_client)
        self.access_token = access_token
        try:
            self.tz = ZoneInfo(user_timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            log.warning(f"Unknown timezone {user_timezone!r}, using UTC for Classroom due dates")
            self.tz = ZoneInfo("UTC")

    async def fetch(self) -> FetchResult:
        headers = bearer(self.access_token)
        async with client_session(self.http_client) as client:
            try:
                raw_courses = await get_token_paginated(
                    client,
                    f"{settings.CLASSROOM_API_BASE}/courses",
                    "courses",
                    headers=headers,
                    params={"courseStates": "ACTIVE"},
                )
            except httpx.HTTPError as exc:
                raise SourceFetchError(f"Failed to fetch Classroom courses: {exc}") from exc

            courses = parse_records(ClassroomCourse, raw_courses)
            per_course = await asyncio.gather(*(self._course_work(client, headers, course) for course in courses))

        items: List[NormalizedItem] = []
        skipped = 0
        for course, work in per_course:
            for entry in work:
                if entry.state != PUBLISHED:
                    skipped += 1
                    continue
                items.append(self.to_item(entry, course.name))

        log.info(f"Fetched {len(items)} published coursework items from {len(courses)} Classroom courses")
        return FetchResult(
            items=items,
            meta={"courses": len(courses), "unpublished_skipped": skipped},
        )

    async def _course_work(
        self, client: httpx.AsyncClient, headers, course: ClassroomCourse
    ) -> Tuple[ClassroomCourse, List[ClassroomCourseWork]]:
        try:
            raw = await get_token_paginated(
                client,
                f"{settings.CLASSROOM_API_BASE}/courses/{course.id}/courseWork",
                "courseWork",
                headers=headers,
                params={"orderBy": "dueDate desc"},
            )
        except httpx.HTTPError as exc:
            log.error(f"Failed to fetch coursework for course {course.id}: {exc}")
            return course, []
        return course, parse_records(ClassroomCourseWork, raw)

    def due_datetime(self, work: ClassroomCourseWork) -> Optional[datetime]:
        """Combine the structured due date/time in the user's timezone, as UTC."""
        if work.dueDate is None:
            return None

        if work.dueTime is None:
            due_time = DEFAULT_DUE_TIME
        else:
            # The API omits zero-valued fields
            due_time = time(work.dueTime.hours or 0, work.dueTime.minutes or 0)

        date = work.dueDate
        local = datetime(date.year, date.month, date.day, due_time.hour, due_time.minute, tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def to_item(self, work: ClassroomCourseWork, course_name: str) -> NormalizedItem:
        return NormalizedItem(
            title=work.title,
            description=work.description or None,
            item_type=ItemType.QUIZ if work.workType in QUIZ_WORK_TYPES else ItemType.ASSIGNMENT,
            due_date=self.due_datetime(work),
            all_day=False,
            source=self.name,
            source_id=f"{work.courseId}_{work.id}",
            source_url=work.alternateLink,
            course_name=course_name,
        )
