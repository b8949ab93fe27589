"""
In-memory editor for a meeting's structured notes document.

Responses are keyed by the exact prompt text from the agenda template; the
hash stored alongside each entry is informational only. Section entries and
their lists are created lazily on first write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from domain.models import (
    AgendaSectionNotes,
    AgendaTemplate,
    QuestionResponse,
    SectionNote,
    StructuredNotes,
    TalkingPointNote,
    epoch_ms,
    to_iso,
    utc_now,
)
from shared_utils.error_handler import ValidationError
from shared_utils.validation import InputValidator


class StructuredNotesStore:
    """Mutable wrapper around a StructuredNotes document.

    Not thread-safe on its own; NotesSession serialises access.
    """

    def __init__(
        self,
        notes: Optional[StructuredNotes] = None,
        template: Optional[AgendaTemplate] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._notes = notes.model_copy(deep=True) if notes is not None else StructuredNotes()
        self._template = template
        self._clock = clock
        self._last_note_id = max(
            (note.id for entry in self._notes.agenda_sections if entry for note in entry.notes or []),
            default=0,
        )
        self.revision = 0

    @classmethod
    def from_document(
        cls,
        document: Optional[Dict[str, Any]],
        template: Optional[AgendaTemplate] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "StructuredNotesStore":
        """Build a store from a plain JSON document.

        Raises:
            ValidationError: If the document is malformed.
        """
        try:
            notes = StructuredNotes.model_validate(document or {})
        except PydanticValidationError as exc:
            raise ValidationError(
                "Structured notes document is malformed",
                context={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc
        return cls(notes=notes, template=template, clock=clock)

    # ------------------------------------------------------------------
    # Document access
    # ------------------------------------------------------------------

    @property
    def notes(self) -> StructuredNotes:
        """Deep copy of the current document."""
        return self._notes.model_copy(deep=True)

    @property
    def template(self) -> Optional[AgendaTemplate]:
        return self._template

    def attach_template(self, template: Optional[AgendaTemplate]) -> None:
        self._template = template

    def to_document(self) -> Dict[str, Any]:
        return self._notes.to_document()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert_question_response(self, section_index: int, question_text: str, response: str) -> QuestionResponse:
        """Set the response for a question, creating the entry if needed."""
        now = self._clock()
        entry = self._section(section_index)
        if entry.questions is None:
            entry.questions = []

        for existing in entry.questions:
            if existing.question_text == question_text:
                existing.response = response
                existing.response_timestamp = to_iso(now)
                break
        else:
            existing = QuestionResponse(
                question_text=question_text,
                question_hash=f"q{section_index}_{epoch_ms(now)}",
                response=response,
                response_timestamp=to_iso(now),
            )
            entry.questions.append(existing)

        self.revision += 1
        return existing.model_copy()

    def upsert_talking_point_notes(self, section_index: int, point_text: str, notes: str) -> TalkingPointNote:
        """Set the notes for a talking point, creating the entry if needed."""
        now = self._clock()
        entry = self._section(section_index)
        if entry.talking_points is None:
            entry.talking_points = []

        for existing in entry.talking_points:
            if existing.point_text == point_text:
                existing.notes = notes
                existing.notes_timestamp = to_iso(now)
                break
        else:
            existing = TalkingPointNote(
                point_text=point_text,
                point_hash=f"tp{section_index}_{epoch_ms(now)}",
                notes=notes,
                notes_timestamp=to_iso(now),
            )
            entry.talking_points.append(existing)

        self.revision += 1
        return existing.model_copy()

    def add_general_note(self, section_index: int, content: str) -> SectionNote:
        """Append a free-form note to a section. Never deduplicates."""
        content = InputValidator.validate_note_content(content)
        now = self._clock()
        entry = self._section(section_index)
        if entry.notes is None:
            entry.notes = []

        # ids are epoch ms, bumped so two notes in the same ms never collide
        note_id = max(epoch_ms(now), self._last_note_id + 1)
        self._last_note_id = note_id

        note = SectionNote(id=note_id, timestamp=to_iso(now), content=content)
        entry.notes.append(note)
        self.revision += 1
        return note.model_copy()

    def remove_general_note(self, section_index: int, note_id: int) -> bool:
        """Remove a general note by id. Returns False when nothing matched."""
        entry = self._existing_section(section_index)
        if entry is None or not entry.notes:
            return False

        remaining = [note for note in entry.notes if note.id != note_id]
        if len(remaining) == len(entry.notes):
            return False

        entry.notes = remaining
        self.revision += 1
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_question_response(self, section_index: int, question_text: str) -> str:
        entry = self._existing_section(section_index)
        for existing in (entry.questions if entry else None) or []:
            if existing.question_text == question_text:
                return existing.response
        return ""

    def get_talking_point_notes(self, section_index: int, point_text: str) -> str:
        entry = self._existing_section(section_index)
        for existing in (entry.talking_points if entry else None) or []:
            if existing.point_text == point_text:
                return existing.notes
        return ""

    def get_section_notes(self, section_index: int) -> List[SectionNote]:
        entry = self._existing_section(section_index)
        return [note.model_copy() for note in (entry.notes if entry else None) or []]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def check_section_index(self, section_index: int) -> int:
        """Validate an index against the attached template, if any."""
        section_count = None
        if self._template is not None and not self._template.is_empty:
            section_count = len(self._template.agenda_sections)
        return InputValidator.validate_section_index(section_index, section_count)

    def _existing_section(self, section_index: int) -> Optional[AgendaSectionNotes]:
        index = self.check_section_index(section_index)
        sections = self._notes.agenda_sections
        return sections[index] if index < len(sections) else None

    def _section(self, section_index: int) -> AgendaSectionNotes:
        index = self.check_section_index(section_index)
        sections = self._notes.agenda_sections
        if index >= len(sections):
            sections.extend([None] * (index + 1 - len(sections)))

        entry = sections[index]
        if entry is None:
            name = None
            if self._template is not None and index < len(self._template.agenda_sections):
                name = self._template.agenda_sections[index].section
            entry = AgendaSectionNotes(section=name)
            sections[index] = entry
        return entry
