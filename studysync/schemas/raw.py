"""Raw source schemas - one model per provider payload shape."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# Canvas REST API


class CanvasCourse(_RawModel):
    id: int
    name: str
    course_code: Optional[str] = None


class CanvasAssignment(_RawModel):
    id: int
    name: str
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    points_possible: Optional[float] = None
    course_id: Optional[int] = None
    html_url: Optional[str] = None
    submission_types: List[str] = Field(default_factory=list)
    is_quiz: bool = False


class CanvasCalendarEvent(_RawModel):
    id: int | str
    title: str
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    description: Optional[str] = None
    location_name: Optional[str] = None
    context_code: Optional[str] = None
    workflow_state: Optional[str] = None
    html_url: Optional[str] = None
    all_day: bool = False


class CanvasPlannable(_RawModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    points_possible: Optional[float] = None
    html_url: Optional[str] = None
    submission_types: List[str] = Field(default_factory=list)


class CanvasPlannerItem(_RawModel):
    plannable_id: int
    plannable_type: str
    plannable_date: Optional[datetime] = None
    course_id: Optional[int] = None
    html_url: Optional[str] = None
    plannable: CanvasPlannable = Field(default_factory=CanvasPlannable)


class CanvasSubmission(_RawModel):
    id: Optional[int] = None
    assignment_id: int
    workflow_state: Optional[str] = None
    submitted_at: Optional[datetime] = None
    late: bool = False
    missing: bool = False
    grade: Optional[str] = None


class CanvasObservee(_RawModel):
    id: int
    name: Optional[str] = None


# Google Classroom API


class ClassroomCourse(_RawModel):
    id: str
    name: str
    section: Optional[str] = None


class ClassroomDate(_RawModel):
    year: int
    month: int
    day: int


class ClassroomTimeOfDay(_RawModel):
    hours: Optional[int] = None
    minutes: Optional[int] = None


class ClassroomCourseWork(_RawModel):
    id: str
    courseId: str
    title: str
    description: Optional[str] = None
    state: Optional[str] = None
    workType: Optional[str] = None
    alternateLink: Optional[str] = None
    dueDate: Optional[ClassroomDate] = None
    dueTime: Optional[ClassroomTimeOfDay] = None


# Gmail API


class GmailHeader(_RawModel):
    name: str
    value: str


class GmailBody(_RawModel):
    data: Optional[str] = None


class GmailPart(_RawModel):
    mimeType: Optional[str] = None
    body: Optional[GmailBody] = None
    parts: List["GmailPart"] = Field(default_factory=list)


class GmailPayload(_RawModel):
    mimeType: Optional[str] = None
    headers: List[GmailHeader] = Field(default_factory=list)
    body: Optional[GmailBody] = None
    parts: List[GmailPart] = Field(default_factory=list)


class GmailMessage(_RawModel):
    id: str
    threadId: Optional[str] = None
    snippet: Optional[str] = None
    internalDate: Optional[str] = None
    payload: GmailPayload = Field(default_factory=GmailPayload)

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for header in self.payload.headers:
            if header.name.lower() == wanted:
                return header.value
        return None


# iCalendar feed


class FeedEvent(_RawModel):
    uid: str
    summary: str
    description: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    start: datetime
    end: Optional[datetime] = None
    all_day: bool = False
