"""
Pure domain models for the meeting lifecycle service.

These models contain NO store dependencies. They represent core business
concepts that flow through ports and services: the meeting row and its
JSON documents (agenda template, structured notes), attendees, reference
rows and the derived permission set.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _loads_if_text(value: Any) -> Any:
    # PostgREST returns jsonb as objects, but older rows hold serialized text
    if isinstance(value, str):
        return json.loads(value) if value.strip() else None
    return value


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MeetingStatus(str, Enum):
    """Meeting lifecycle status (stored spelling, hyphen included)."""

    NOT_SCHEDULED = "not_scheduled"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS: Dict[MeetingStatus, str] = {
    MeetingStatus.NOT_SCHEDULED: "Not Scheduled",
    MeetingStatus.SCHEDULED: "Scheduled",
    MeetingStatus.IN_PROGRESS: "In Progress",
    MeetingStatus.COMPLETED: "Completed",
    MeetingStatus.CANCELLED: "Cancelled",
}


class AttendeeRole(str, Enum):
    ORGANIZER = "organizer"
    REQUIRED = "required"
    OPTIONAL = "optional"


class AttendanceStatus(str, Enum):
    """Attendance value. The first three apply before a meeting, the last two during it."""

    INVITED = "invited"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PRESENT = "present"
    ABSENT = "absent"


PRE_MEETING_ATTENDANCE = frozenset(
    {AttendanceStatus.INVITED, AttendanceStatus.ACCEPTED, AttendanceStatus.DECLINED}
)
LIVE_ATTENDANCE = frozenset({AttendanceStatus.PRESENT, AttendanceStatus.ABSENT})


class SectionKind(str, Enum):
    """Which prompt lists an agenda section carries."""

    QUESTIONS = "questions"
    TALKING_POINTS = "talking_points"
    BOTH = "both"
    NEITHER = "neither"


# ---------------------------------------------------------------------------
# Agenda template (meetings.template_data / meeting_types.template_structure)
# ---------------------------------------------------------------------------


class AgendaSection(BaseModel):
    """One section of an agenda template."""

    model_config = ConfigDict(extra="allow")

    section: str = ""
    purpose: str = ""
    time_minutes: int = 0
    section_type: Optional[str] = None
    questions: List[str] = []
    talking_points: List[str] = []
    checklist: List[str] = []

    @property
    def kind(self) -> SectionKind:
        if self.questions and self.talking_points:
            return SectionKind.BOTH
        if self.questions:
            return SectionKind.QUESTIONS
        if self.talking_points:
            return SectionKind.TALKING_POINTS
        return SectionKind.NEITHER


class AgendaTemplate(BaseModel):
    """Ordered agenda sections plus meeting-level guidance lists."""

    model_config = ConfigDict(extra="allow")

    agenda_sections: List[AgendaSection] = []
    key_messages: List[str] = []
    expected_outputs: List[str] = []
    learning_objectives: List[str] = []
    setup: Optional[Any] = None

    @property
    def is_empty(self) -> bool:
        return not self.agenda_sections

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Structured notes (meetings.structured_notes)
# ---------------------------------------------------------------------------


class QuestionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    question_text: str
    question_hash: str
    response: str = ""
    response_timestamp: str


class TalkingPointNote(BaseModel):
    model_config = ConfigDict(extra="allow")

    point_text: str
    point_hash: str
    notes: str = ""
    notes_timestamp: str


class SectionNote(BaseModel):
    """Free-form note attached to an agenda section."""

    model_config = ConfigDict(extra="allow")

    id: int
    timestamp: str
    content: str
    type: str = "general_note"


class AgendaSectionNotes(BaseModel):
    """Notes for one agenda section.

    Each list stays ``None`` until the first write to it.
    """

    model_config = ConfigDict(extra="allow")

    section: Optional[str] = None
    questions: Optional[List[QuestionResponse]] = None
    talking_points: Optional[List[TalkingPointNote]] = None
    notes: Optional[List[SectionNote]] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class StructuredNotes(BaseModel):
    """Sparse, template-index-aligned list of section notes."""

    agenda_sections: List[Optional[AgendaSectionNotes]] = []

    def to_document(self) -> Dict[str, Any]:
        return {
            "agenda_sections": [
                entry.to_document() if entry is not None else None
                for entry in self.agenda_sections
            ]
        }


# ---------------------------------------------------------------------------
# Meeting rows
# ---------------------------------------------------------------------------


class Meeting(BaseModel):
    """A row of the ``meetings`` table."""

    model_config = ConfigDict(extra="ignore")

    meeting_id: int
    meeting_name: str
    scheduled_date: Optional[str] = None
    duration_minutes: Optional[int] = None
    location_platform: Optional[str] = None
    status: MeetingStatus = MeetingStatus.NOT_SCHEDULED
    meeting_objectives: Optional[str] = None
    key_messages: Optional[str] = None
    template_data: Optional[AgendaTemplate] = None
    structured_notes: StructuredNotes = StructuredNotes()
    unstructured_notes: Optional[str] = None
    free_form_insights: Optional[str] = None
    meeting_summary: Optional[str] = None
    overall_assessment: Optional[str] = None
    meeting_type_id: Optional[int] = None
    phase_id: Optional[int] = None
    initiative_id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("template_data", mode="before")
    @classmethod
    def parse_template_text(cls, v: Any) -> Any:
        return _loads_if_text(v)

    @field_validator("structured_notes", mode="before")
    @classmethod
    def parse_notes_text(cls, v: Any) -> Any:
        v = _loads_if_text(v)
        return v if v else StructuredNotes()


class AttendeeDraft(BaseModel):
    person_id: int
    role_in_meeting: AttendeeRole = AttendeeRole.REQUIRED


class MeetingDraft(BaseModel):
    """Input for creating a meeting together with its initial attendees."""

    meeting_name: str
    scheduled_date: Optional[str] = None
    duration_minutes: Optional[int] = None
    location_platform: Optional[str] = None
    meeting_objectives: Optional[str] = None
    key_messages: Optional[str] = None
    meeting_type_id: Optional[int] = None
    phase_id: Optional[int] = None
    initiative_id: Optional[int] = None
    template_data: Optional[AgendaTemplate] = None
    attendees: List[AttendeeDraft] = []


class Attendee(BaseModel):
    """A ``meeting_attendees`` row joined with its ``people`` row."""

    model_config = ConfigDict(extra="ignore")

    person_id: int
    meeting_id: Optional[int] = None
    role_in_meeting: AttendeeRole = AttendeeRole.REQUIRED
    attendance_status: AttendanceStatus = AttendanceStatus.INVITED
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role_title: Optional[str] = None
    department_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


# ---------------------------------------------------------------------------
# Reference rows
# ---------------------------------------------------------------------------


class MeetingType(BaseModel):
    model_config = ConfigDict(extra="ignore")

    meeting_type_id: int
    type_name: str
    description: Optional[str] = None
    template_structure: Optional[AgendaTemplate] = None

    @field_validator("template_structure", mode="before")
    @classmethod
    def parse_template_text(cls, v: Any) -> Any:
        return _loads_if_text(v)


class Phase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phase_id: int
    phase_name: str
    phase_number: Optional[int] = None


class Initiative(BaseModel):
    model_config = ConfigDict(extra="ignore")

    initiative_id: int
    initiative_name: str


class Person(BaseModel):
    model_config = ConfigDict(extra="ignore")

    person_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role_title: Optional[str] = None
    department_name: Optional[str] = None


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class MeetingAggregate(BaseModel):
    """Everything the meeting view needs, loaded together."""

    meeting: Meeting
    meeting_type: Optional[MeetingType] = None
    phase: Optional[Phase] = None
    initiative: Optional[Initiative] = None
    template: AgendaTemplate = AgendaTemplate()
    attendees: List[Attendee] = []
    loaded_at: str


class PermissionSet(BaseModel):
    """Capabilities for one meeting status. Derived, never persisted."""

    model_config = ConfigDict(frozen=True)

    can_edit_agenda_structure: bool = False
    can_edit_agenda_content: bool = False
    can_edit_meeting_details: bool = False
    can_edit_meeting_type: bool = False
    can_edit_attendees: bool = False
    can_track_attendance: bool = False
    can_edit_schedule: bool = False
    can_take_notes: bool = False
    can_edit_notes: bool = False
    can_change_status: bool = False
    can_delete: bool = False
    can_start_meeting: bool = False
    can_complete_meeting: bool = False
    can_cancel_meeting: bool = False
    can_pause_meeting: bool = False
    restriction_reason: Optional[str] = None

    @property
    def can_write_notes(self) -> bool:
        return self.can_take_notes or self.can_edit_notes
