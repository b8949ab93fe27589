"""
Downloadable snapshot of a meeting's notes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from domain.models import Meeting, StructuredNotes, to_iso, utc_now


class NotesExport(BaseModel):
    """Everything captured for a meeting, frozen at export time."""

    meeting_name: str
    meeting_id: int
    export_timestamp: str
    structured_notes: Dict[str, Any]
    unstructured_notes: str = ""
    free_form_insights: str = ""
    meeting_summary: str = ""
    overall_assessment: str = ""

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    def export_filename(self) -> str:
        # export_timestamp is ISO-8601, so the first ten characters are the date
        return f"meeting-notes-{self.meeting_id}-{self.export_timestamp[:10]}.json"


def build_notes_export(
    meeting: Meeting,
    structured_notes: Optional[StructuredNotes] = None,
    unstructured_notes: Optional[str] = None,
    free_form_insights: Optional[str] = None,
    meeting_summary: Optional[str] = None,
    overall_assessment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NotesExport:
    """Snapshot the notes for ``meeting``.

    Explicit arguments carry unsaved local state and win over the values
    on the meeting row.
    """
    notes = structured_notes if structured_notes is not None else meeting.structured_notes

    def pick(local: Optional[str], stored: Optional[str]) -> str:
        if local is not None:
            return local
        return stored or ""

    return NotesExport(
        meeting_name=meeting.meeting_name,
        meeting_id=meeting.meeting_id,
        export_timestamp=to_iso(now or utc_now()),
        structured_notes=notes.to_document(),
        unstructured_notes=pick(unstructured_notes, meeting.unstructured_notes),
        free_form_insights=pick(free_form_insights, meeting.free_form_insights),
        meeting_summary=pick(meeting_summary, meeting.meeting_summary),
        overall_assessment=pick(overall_assessment, meeting.overall_assessment),
    )
