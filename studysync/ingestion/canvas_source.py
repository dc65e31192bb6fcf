"""Canvas LMS REST API source.

Fetches active courses, per-course assignments and submissions and the user's
calendar events. Observer (parent) accounts usually get an empty assignment
listing, so when every course comes back empty an ordered chain of fallback
strategies is tried until one produces assignments.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from studysync.core.errors import SourceFetchError
from studysync.core.logging import get_logger
from studysync.ingestion.base import BaseSource, FetchResult, parse_records
from studysync.ingestion.http import bearer, client_session, get_json, get_link_paginated
from studysync.schemas.normalized import ItemSource, ItemStatus, ItemType, NormalizedItem
from studysync.schemas.raw import (
    CanvasAssignment,
    CanvasCalendarEvent,
    CanvasCourse,
    CanvasObservee,
    CanvasPlannerItem,
    CanvasSubmission,
)

log = get_logger("ingestion.canvas")

PLANNER_ASSIGNMENT_TYPES = {"assignment", "quiz", "discussion_topic"}
COMPLETED_SUBMISSION_STATES = {"submitted", "graded", "pending_review"}

_ASSIGNMENT_URL_RE = re.compile(r"assignments/(\d+)")
_DIGITS_RE = re.compile(r"(\d+)$")


@dataclass
class StrategyOutcome:
    """Result of one fallback strategy: assignments found and raw entries seen."""

    assignments: List[CanvasAssignment] = field(default_factory=list)
    attempted: int = 0
    entry_types: List[str] = field(default_factory=list)


FallbackStrategy = Callable[[httpx.AsyncClient, List[CanvasCourse]], Awaitable[StrategyOutcome]]


def context_code_for(course_id: int | str) -> str:
    return f"course_{course_id}"


class CanvasSource(BaseSource):
    """Fetches assignments and events from the Canvas REST API."""

    name = ItemSource.CANVAS

    def __init__(
        self,
        base_url: str,
        token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_client)
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.fallback_strategies: List[Tuple[str, FallbackStrategy]] = [
            ("planner", self._planner_strategy),
            ("calendar_assignments", self._calendar_assignment_strategy),
            ("observee_planner", self._observee_planner_strategy),
        ]

    @property
    def headers(self) -> Dict[str, str]:
        return bearer(self.token)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    async def fetch(self) -> FetchResult:
        async with client_session(self.http_client) as client:
            courses = await self._list_courses(client)
            course_names = {course.id: course.name for course in courses}

            assignments = await self._standard_assignments(client, courses)
            meta: Dict[str, Any] = {
                "courses": len(courses),
                "standard_assignments": len(assignments),
            }

            if not assignments and courses:
                log.info("Standard assignment listing returned 0 items, trying fallback strategies")
                assignments, strategy, attempts = await self.run_fallback_chain(client, courses)
                meta["fallback_strategy"] = strategy
                meta["fallback_attempts"] = attempts

            submissions = await self._submissions_by_assignment(client, courses)
            events = await self._calendar_events(client)

        items: Dict[str, NormalizedItem] = {}
        for assignment in assignments:
            item = self._assignment_to_item(assignment, course_names, submissions.get(assignment.id))
            items[item.source_id] = item
        for event in events:
            item = self._event_to_item(event, course_names)
            items[item.source_id] = item

        meta["events"] = len(events)
        log.info(f"Canvas fetch complete: courses={len(courses)} assignments={len(assignments)} events={len(events)}")

        return FetchResult(
            items=list(items.values()),
            context_codes={context_code_for(course.id): course.name for course in courses},
            course_codes={course.course_code.lower(): course.name for course in courses if course.course_code},
            meta=meta,
        )

    # -------------------------------------------------------------------------
    # Primary collections
    # -------------------------------------------------------------------------
    async def _list_courses(self, client: httpx.AsyncClient) -> List[CanvasCourse]:
        try:
            raw = await get_link_paginated(
                client,
                self._url("/courses"),
                headers=self.headers,
                params={"enrollment_state": "active", "per_page": 50},
            )
        except httpx.HTTPError as exc:
            raise SourceFetchError(f"Failed to fetch Canvas courses: {exc}") from exc
        return parse_records(CanvasCourse, raw)

    async def _standard_assignments(self, client: httpx.AsyncClient, courses: List[CanvasCourse]) -> List[CanvasAssignment]:
        per_course = await asyncio.gather(*(self._course_assignments(client, course) for course in courses))
        return [assignment for batch in per_course for assignment in batch]

    async def _course_assignments(self, client: httpx.AsyncClient, course: CanvasCourse) -> List[CanvasAssignment]:
        try:
            raw = await get_link_paginated(
                client,
                self._url(f"/courses/{course.id}/assignments"),
                headers=self.headers,
                params=[("per_page", 100), ("order_by", "due_at"), ("include[]", "observed_users")],
            )
        except httpx.HTTPError as exc:
            log.error(f"Failed to fetch assignments for course {course.id}: {exc}")
            return []

        assignments = parse_records(CanvasAssignment, raw)
        for assignment in assignments:
            if assignment.course_id is None:
                assignment.course_id = course.id
        return assignments

    async def _submissions_by_assignment(
        self, client: httpx.AsyncClient, courses: List[CanvasCourse]
    ) -> Dict[int, CanvasSubmission]:
        per_course = await asyncio.gather(*(self._course_submissions(client, course) for course in courses))
        by_assignment: Dict[int, CanvasSubmission] = {}
        for batch in per_course:
            for submission in batch:
                by_assignment[submission.assignment_id] = submission
        return by_assignment

    async def _course_submissions(self, client: httpx.AsyncClient, course: CanvasCourse) -> List[CanvasSubmission]:
        try:
            raw = await get_link_paginated(
                client,
                self._url(f"/courses/{course.id}/students/submissions"),
                headers=self.headers,
                params=[("student_ids[]", "self"), ("per_page", 100)],
            )
        except httpx.HTTPError as exc:
            log.error(f"Failed to fetch submissions for course {course.id}: {exc}")
            return []
        return parse_records(CanvasSubmission, raw)

    async def _calendar_events(self, client: httpx.AsyncClient) -> List[CanvasCalendarEvent]:
        now = datetime.now(timezone.utc)
        try:
            raw = await get_link_paginated(
                client,
                self._url("/calendar_events"),
                headers=self.headers,
                params={
                    "start_date": (now - timedelta(days=30)).isoformat(),
                    "end_date": (now + timedelta(days=183)).isoformat(),
                    "per_page": 100,
                },
            )
        except httpx.HTTPError as exc:
            log.error(f"Failed to fetch Canvas calendar events: {exc}")
            return []
        return parse_records(CanvasCalendarEvent, raw)

    # -------------------------------------------------------------------------
    # Fallback chain (observer / parent accounts)
    # -------------------------------------------------------------------------
    async def run_fallback_chain(
        self, client: httpx.AsyncClient, courses: List[CanvasCourse]
    ) -> Tuple[List[CanvasAssignment], Optional[str], List[Dict[str, Any]]]:
        """Try each strategy in order; stop at the first that yields assignments."""
        attempts: List[Dict[str, Any]] = []
        for name, strategy in self.fallback_strategies:
            try:
                outcome = await strategy(client, courses)
            except httpx.HTTPError as exc:
                log.error(f"Canvas fallback strategy {name} failed: {exc}")
                outcome = StrategyOutcome()

            types = ", ".join(outcome.entry_types) or "none"
            log.info(
                f"Canvas fallback {name}: attempted={outcome.attempted} "
                f"assignments={len(outcome.assignments)} types={types}"
            )
            attempts.append({"strategy": name, "attempted": outcome.attempted, "found": len(outcome.assignments)})

            if outcome.assignments:
                return outcome.assignments, name, attempts

        log.warning("All Canvas fallback strategies returned 0 assignments")
        return [], None, attempts

    async def _planner_items(self, client: httpx.AsyncClient, observed_user_id: Optional[int] = None) -> List[CanvasPlannerItem]:
        now = datetime.now(timezone.utc)
        lookback = 90 if observed_user_id else 30
        params: Dict[str, Any] = {
            "start_date": (now - timedelta(days=lookback)).isoformat(),
            "end_date": (now + timedelta(days=183)).isoformat(),
            "per_page": 100,
        }
        if observed_user_id is not None:
            params["observed_user_id"] = observed_user_id
        raw = await get_link_paginated(client, self._url("/planner/items"), headers=self.headers, params=params)
        return parse_records(CanvasPlannerItem, raw)

    def _planner_outcome(self, planner_items: List[CanvasPlannerItem]) -> StrategyOutcome:
        assignments = [
            self._planner_to_assignment(entry)
            for entry in planner_items
            if entry.plannable_type in PLANNER_ASSIGNMENT_TYPES
        ]
        return StrategyOutcome(
            assignments=assignments,
            attempted=len(planner_items),
            entry_types=sorted({entry.plannable_type for entry in planner_items}),
        )

    async def _planner_strategy(self, client: httpx.AsyncClient, courses: List[CanvasCourse]) -> StrategyOutcome:
        return self._planner_outcome(await self._planner_items(client))

    async def _calendar_assignment_strategy(self, client: httpx.AsyncClient, courses: List[CanvasCourse]) -> StrategyOutcome:
        now = datetime.now(timezone.utc)
        params: List[Tuple[str, Any]] = [
            ("type", "assignment"),
            ("all_events", 1),
            *[("context_codes[]", context_code_for(course.id)) for course in courses],
            ("start_date", (now - timedelta(days=90)).isoformat()),
            ("end_date", (now + timedelta(days=183)).isoformat()),
            ("per_page", 100),
        ]
        raw = await get_link_paginated(client, self._url("/calendar_events"), headers=self.headers, params=params)
        events = parse_records(CanvasCalendarEvent, raw)

        assignments = [assignment for assignment in map(self._event_to_assignment, events) if assignment]
        return StrategyOutcome(assignments=assignments, attempted=len(events), entry_types=["assignment"] if events else [])

    async def _observee_planner_strategy(self, client: httpx.AsyncClient, courses: List[CanvasCourse]) -> StrategyOutcome:
        try:
            raw = await get_link_paginated(
                client, self._url("/users/self/observees"), headers=self.headers, params={"per_page": 50}
            )
        except httpx.HTTPError as exc:
            log.info(f"Observee lookup failed, not an observer account: {exc}")
            return StrategyOutcome()

        observees = parse_records(CanvasObservee, raw)
        if not observees:
            log.info("No observees found; not an observer account or the API returned nothing")
            return StrategyOutcome()

        log.info(f"Observer account detected, observing: {', '.join(o.name or str(o.id) for o in observees)}")
        attempted = 0
        entry_types: set[str] = set()
        for observee in observees:
            try:
                planner_items = await self._planner_items(client, observed_user_id=observee.id)
            except httpx.HTTPError as exc:
                log.error(f"Failed to fetch planner for observee {observee.id}: {exc}")
                continue

            outcome = self._planner_outcome(planner_items)
            attempted += outcome.attempted
            entry_types.update(outcome.entry_types)
            log.info(f"Observee {observee.name or observee.id} planner: {outcome.attempted} entries, {len(outcome.assignments)} assignments")
            if outcome.assignments:
                return StrategyOutcome(outcome.assignments, attempted, sorted(entry_types))

        return StrategyOutcome(attempted=attempted, entry_types=sorted(entry_types))

    # -------------------------------------------------------------------------
    # Conversions
    # -------------------------------------------------------------------------
    def _absolute_url(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        return url if url.startswith("http") else f"{self.base_url}{url}"

    def _planner_to_assignment(self, entry: CanvasPlannerItem) -> CanvasAssignment:
        plannable = entry.plannable
        return CanvasAssignment(
            id=entry.plannable_id,
            name=plannable.title or "Untitled",
            description=plannable.description,
            due_at=plannable.due_at or entry.plannable_date,
            points_possible=plannable.points_possible,
            course_id=entry.course_id,
            html_url=self._absolute_url(plannable.html_url) or self._absolute_url(entry.html_url),
            submission_types=plannable.submission_types,
            is_quiz=entry.plannable_type == "quiz",
        )

    @staticmethod
    def _event_to_assignment(event: CanvasCalendarEvent) -> Optional[CanvasAssignment]:
        course_id = _course_id_from_context(event.context_code)
        if course_id is None:
            return None

        url_match = _ASSIGNMENT_URL_RE.search(event.html_url or "")
        if url_match:
            assignment_id = int(url_match.group(1))
        else:
            id_match = _DIGITS_RE.search(str(event.id))
            if not id_match:
                return None
            assignment_id = int(id_match.group(1))

        return CanvasAssignment(
            id=assignment_id,
            name=event.title,
            description=event.description,
            due_at=event.start_at,
            course_id=course_id,
            html_url=event.html_url,
        )

    @staticmethod
    def infer_kind(assignment: CanvasAssignment) -> ItemType:
        if assignment.is_quiz or "online_quiz" in assignment.submission_types:
            return ItemType.QUIZ
        return ItemType.ASSIGNMENT

    def _assignment_to_item(
        self,
        assignment: CanvasAssignment,
        course_names: Dict[int, str],
        submission: Optional[CanvasSubmission],
    ) -> NormalizedItem:
        item = NormalizedItem(
            title=assignment.name,
            description=assignment.description or None,
            item_type=self.infer_kind(assignment),
            due_date=assignment.due_at,
            all_day=False,
            source=self.name,
            source_id=f"assignment_{assignment.id}",
            source_url=assignment.html_url,
            course_name=course_names.get(assignment.course_id) if assignment.course_id is not None else None,
            context_code=context_code_for(assignment.course_id) if assignment.course_id is not None else None,
        )

        if submission and submission.workflow_state in COMPLETED_SUBMISSION_STATES:
            item.status = ItemStatus.COMPLETED
            item.completed_at = submission.submitted_at or datetime.now(timezone.utc)
        return item

    def _event_to_item(self, event: CanvasCalendarEvent, course_names: Dict[int, str]) -> NormalizedItem:
        course_id = _course_id_from_context(event.context_code)
        return NormalizedItem(
            title=event.title,
            description=event.description or None,
            item_type=ItemType.ACTIVITY,
            start_time=event.start_at,
            end_time=event.end_at,
            all_day=event.all_day,
            source=self.name,
            source_id=f"event_{event.id}",
            source_url=event.html_url,
            course_name=course_names.get(course_id) if course_id is not None else None,
            context_code=event.context_code,
        )

    async def validate_token(self) -> bool:
        """Check the token against ``/users/self``."""
        try:
            async with client_session(self.http_client) as client:
                await get_json(client, self._url("/users/self"), headers=self.headers)
        except httpx.HTTPError:
            return False
        return True


def _course_id_from_context(context_code: Optional[str]) -> Optional[int]:
    if not context_code or not context_code.startswith("course_"):
        return None
    try:
        return int(context_code[len("course_"):])
    except ValueError:
        return None
