"""
Meeting service: create, delete, edit details and edit the agenda template.

Every edit is gated on the meeting's current PermissionSet and invalidates
the aggregate loader after a successful write.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from domain.agenda import (
    OrphanedPrompt,
    TemplateValidationResult,
    find_orphaned_prompts,
    is_structural_change,
    parse_template,
    resolve_template,
    validate_template,
)
from domain.models import (
    AgendaTemplate,
    Attendee,
    Meeting,
    MeetingDraft,
    MeetingStatus,
    Person,
)
from domain.permissions import resolve_permissions
from ports.attendee_store import AttendeeStorePort
from ports.meeting_store import MeetingStorePort
from ports.reference_store import ReferenceStorePort
from services.meeting_loader import MeetingAggregateLoader
from services.roster_service import build_attendee
from shared_utils.constants import LogScope
from shared_utils.error_handler import NotFoundError, PermissionDeniedError, ValidationError
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.validation import InputValidator


logger = get_scoped_logger(LogScope.MEETINGS)

DETAIL_FIELDS = frozenset(
    {"meeting_name", "meeting_objectives", "key_messages", "location_platform", "phase_id", "initiative_id"}
)
SCHEDULE_FIELDS = frozenset({"scheduled_date", "duration_minutes"})
TYPE_FIELDS = frozenset({"meeting_type_id"})

ATTENDEES_NOT_SAVED = (
    "Meeting created, but attendees could not be added. Re-add them from the meeting page."
)


class MeetingCreationReport(BaseModel):
    """Result of the two-step create (meeting row, then attendee rows)."""

    meeting: Meeting
    attendees: List[Attendee] = []
    attendees_saved: bool = True
    warning: Optional[str] = None
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.attendees_saved


class TemplateUpdateReport(BaseModel):
    template: AgendaTemplate
    structural_change: bool
    validation: TemplateValidationResult
    orphaned_prompts: List[OrphanedPrompt] = []


class MeetingService:
    """Meeting-level writes outside the notes and roster flows."""

    def __init__(
        self,
        meeting_store: MeetingStorePort,
        attendee_store: AttendeeStorePort,
        reference_store: ReferenceStorePort,
        loader: Optional[MeetingAggregateLoader] = None,
    ) -> None:
        self._meetings = meeting_store
        self._attendees = attendee_store
        self._references = reference_store
        self._loader = loader

    def get_meeting(self, meeting_id: int) -> Meeting:
        """Raises NotFoundError when the meeting does not exist."""
        meeting = self._meetings.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    def list_people(self) -> List[Person]:
        return self._references.list_people()

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    def create_meeting(self, draft: MeetingDraft) -> MeetingCreationReport:
        """Insert the meeting, then its attendees.

        A failure on the second step keeps the meeting and reports that the
        attendees must be re-added; it does not raise.

        Raises:
            ValidationError: If the draft is invalid (nothing is written).
            ExternalServiceError: If the people lookup or the meeting insert
                fails (nothing is written).
        """
        InputValidator.validate_non_empty_string(draft.meeting_name, "meeting_name")
        if draft.duration_minutes is not None:
            InputValidator.validate_positive_int(draft.duration_minutes, "duration_minutes")

        fields = draft.model_dump(mode="json", exclude={"attendees"}, exclude_none=True)
        fields["meeting_name"] = draft.meeting_name.strip()
        fields["status"] = MeetingStatus.NOT_SCHEDULED.value
        fields["structured_notes"] = {"agenda_sections": []}

        # Looked up before the insert so a failure leaves nothing behind.
        people = {person.person_id: person for person in self._references.list_people()} if draft.attendees else {}

        meeting = self._meetings.create_meeting(fields)
        logger.info("meeting_created", meeting_id=meeting.meeting_id, attendee_count=len(draft.attendees))

        attendees: List[Attendee] = []
        seen = set()
        for entry in draft.attendees:
            if entry.person_id in seen:
                continue
            seen.add(entry.person_id)
            attendees.append(
                build_attendee(entry.person_id, entry.role_in_meeting, meeting.status, people.get(entry.person_id))
            )

        report = MeetingCreationReport(meeting=meeting, attendees=attendees)
        if attendees:
            try:
                self._attendees.insert_attendees(meeting.meeting_id, attendees)
            except Exception as exc:
                logger.warning(
                    "meeting_attendees_insert_failed",
                    meeting_id=meeting.meeting_id,
                    attendee_count=len(attendees),
                    error=str(exc),
                )
                report = MeetingCreationReport(
                    meeting=meeting,
                    attendees=[],
                    attendees_saved=False,
                    warning=ATTENDEES_NOT_SAVED,
                    error=str(exc),
                )

        self._invalidate(meeting.meeting_id)
        return report

    def delete_meeting(self, meeting_id: int) -> None:
        """Delete a meeting that has not been scheduled yet.

        Raises:
            NotFoundError: If the meeting does not exist.
            PermissionDeniedError: If the status forbids deletion.
        """
        meeting = self.get_meeting(meeting_id)
        permissions = resolve_permissions(meeting.status)
        if not permissions.can_delete:
            raise PermissionDeniedError(
                "Deleting the meeting", permissions.restriction_reason, context={"meeting_id": meeting_id}
            )

        self._meetings.delete_meeting(meeting_id)
        self._invalidate(meeting_id)
        logger.info("meeting_deleted", meeting_id=meeting_id)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_details(self, meeting_id: int, updates: Dict[str, Any]) -> Meeting:
        """Partially update details, schedule or type.

        Raises:
            ValidationError: For unknown or invalid fields.
            PermissionDeniedError: If any requested group is locked.
        """
        if not updates:
            raise ValidationError("No fields to update")
        allowed = DETAIL_FIELDS | SCHEDULE_FIELDS | TYPE_FIELDS
        unknown = sorted(set(updates) - allowed)
        if unknown:
            raise ValidationError("Fields cannot be updated here", context={"fields": unknown})

        meeting = self.get_meeting(meeting_id)
        permissions = resolve_permissions(meeting.status)
        checks = (
            (DETAIL_FIELDS, permissions.can_edit_meeting_details, "Editing meeting details"),
            (SCHEDULE_FIELDS, permissions.can_edit_schedule, "Editing the schedule"),
            (TYPE_FIELDS, permissions.can_edit_meeting_type, "Changing the meeting type"),
        )
        for group, granted, action in checks:
            if group & set(updates) and not granted:
                raise PermissionDeniedError(
                    action, permissions.restriction_reason, context={"meeting_id": meeting_id}
                )

        fields = dict(updates)
        if "meeting_name" in fields:
            fields["meeting_name"] = InputValidator.validate_non_empty_string(fields["meeting_name"], "meeting_name")
        if fields.get("duration_minutes") is not None:
            InputValidator.validate_positive_int(fields["duration_minutes"], "duration_minutes")

        self._meetings.update_meeting(meeting_id, fields)
        self._invalidate(meeting_id)
        logger.info("meeting_details_updated", meeting_id=meeting_id, fields=sorted(fields))
        return self.get_meeting(meeting_id)

    def update_template(self, meeting_id: int, raw_template: Any) -> TemplateUpdateReport:
        """Replace the meeting's agenda template.

        Changing the shape (sections, their order, prompt counts) needs
        ``can_edit_agenda_structure``; rewording within the same shape needs
        ``can_edit_agenda_content``.

        Raises:
            ValidationError: If the template is malformed or fails the editor rules.
            PermissionDeniedError: If the status forbids this kind of edit.
        """
        template = parse_template(raw_template)
        meeting = self.get_meeting(meeting_id)
        meeting_type = (
            self._references.get_meeting_type(meeting.meeting_type_id)
            if meeting.meeting_type_id is not None else None
        )
        current = resolve_template(meeting, meeting_type)
        structural = is_structural_change(current, template)

        permissions = resolve_permissions(meeting.status)
        if structural and not permissions.can_edit_agenda_structure:
            raise PermissionDeniedError(
                "Changing the agenda structure", permissions.restriction_reason, context={"meeting_id": meeting_id}
            )
        if not permissions.can_edit_agenda_content:
            raise PermissionDeniedError(
                "Editing the agenda", permissions.restriction_reason, context={"meeting_id": meeting_id}
            )

        validation = validate_template(template)
        if not validation.is_valid:
            raise ValidationError(
                "Template has errors",
                context={"errors": [issue.model_dump(mode="json") for issue in validation.errors]},
            )

        self._meetings.update_meeting(meeting_id, {"template_data": template.to_document()})
        self._invalidate(meeting_id)

        orphans = find_orphaned_prompts(template, meeting.structured_notes)
        logger.info(
            "meeting_template_updated",
            meeting_id=meeting_id,
            structural_change=structural,
            warning_count=len(validation.warnings),
            orphaned_prompts=len(orphans),
        )
        return TemplateUpdateReport(
            template=template,
            structural_change=structural,
            validation=validation,
            orphaned_prompts=orphans,
        )

    def _invalidate(self, meeting_id: int) -> None:
        if self._loader is not None:
            self._loader.invalidate(meeting_id)
