"""
Notes session for one mounted meeting.

Combines the structured notes store, the four free-text notes fields, the
two debounce tiers and the autosave coordinator, and gates every edit on
the meeting's current permissions.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from domain.models import (
    AgendaTemplate,
    Meeting,
    MeetingStatus,
    QuestionResponse,
    SectionNote,
    StructuredNotes,
    TalkingPointNote,
    utc_now,
)
from domain.notes_export import NotesExport, build_notes_export
from domain.permissions import resolve_permissions
from domain.structured_notes import StructuredNotesStore
from ports.meeting_store import MeetingStorePort
from services.persistence_coordinator import (
    DebouncedPersistenceCoordinator,
    FieldDebouncer,
    PersistenceState,
    TimerFactory,
)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import PermissionDeniedError, ValidationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.NOTES)

NOTES_TEXT_FIELDS = ("unstructured_notes", "free_form_insights", "meeting_summary", "overall_assessment")


class NotesSession:
    """Structured and free-text notes for a single meeting.

    Lock discipline: the session's RLock is never held while calling into
    the coordinator's write path, because the coordinator's timer thread
    takes the write lock first and then asks the session for a snapshot.
    """

    def __init__(
        self,
        meeting: Meeting,
        template: AgendaTemplate,
        meeting_store: MeetingStorePort,
        status_provider: Callable[[], Union[MeetingStatus, str]],
        autosave_seconds: float = Defaults.NOTES_AUTOSAVE_SECONDS,
        field_debounce_seconds: float = Defaults.FIELD_DEBOUNCE_SECONDS,
        text_debounce_seconds: float = Defaults.TEXT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = threading.Timer,
        on_persisted: Optional[Callable[[int], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.meeting_id = meeting.meeting_id
        self._meeting = meeting.model_copy(deep=True)
        self._status_provider = status_provider
        self._clock = clock
        self._lock = threading.RLock()

        self._store = StructuredNotesStore(meeting.structured_notes, template, clock)
        self._text: Dict[str, str] = {name: getattr(meeting, name) or "" for name in NOTES_TEXT_FIELDS}

        self._coordinator = DebouncedPersistenceCoordinator(
            meeting_id=meeting.meeting_id,
            store=meeting_store,
            snapshot=self.snapshot,
            delay_seconds=autosave_seconds,
            timer_factory=timer_factory,
            on_persisted=on_persisted,
            clock=clock,
        )
        self._field_tier = FieldDebouncer(field_debounce_seconds, timer_factory, on_error=self._edit_dropped)
        self._text_tier = FieldDebouncer(text_debounce_seconds, timer_factory, on_error=self._edit_dropped)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def coordinator(self) -> DebouncedPersistenceCoordinator:
        return self._coordinator

    @property
    def state(self) -> PersistenceState:
        return self._coordinator.state

    @property
    def structured_notes(self) -> StructuredNotes:
        with self._lock:
            return self._store.notes

    @property
    def pending_edits(self) -> List[str]:
        return self._field_tier.pending_keys + self._text_tier.pending_keys

    def snapshot(self) -> Dict[str, Any]:
        """Columns written by a notes save."""
        with self._lock:
            return {"structured_notes": self._store.to_document(), **self._text}

    def attach_template(self, template: AgendaTemplate) -> None:
        with self._lock:
            self._store.attach_template(template)

    def apply_meeting_fields(self, updates: Dict[str, Any]) -> None:
        """Refresh non-notes meeting columns (name etc.) used by export."""
        with self._lock:
            self._meeting = self._meeting.model_copy(update=updates)

    def text_field(self, field: str) -> str:
        with self._lock:
            return self._text[self._check_field(field)]

    def get_question_response(self, section_index: int, question_text: str) -> str:
        with self._lock:
            return self._store.get_question_response(section_index, question_text)

    def get_talking_point_notes(self, section_index: int, point_text: str) -> str:
        with self._lock:
            return self._store.get_talking_point_notes(section_index, point_text)

    def get_section_notes(self, section_index: int) -> List[SectionNote]:
        with self._lock:
            return self._store.get_section_notes(section_index)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def upsert_question_response(
        self, section_index: int, question_text: str, response: str, debounce: bool = False
    ) -> Optional[QuestionResponse]:
        """Record a question's response. Returns None when debounced."""
        self._require_writable("Editing notes")
        with self._lock:
            self._store.check_section_index(section_index)

        def apply() -> QuestionResponse:
            with self._lock:
                entry = self._store.upsert_question_response(section_index, question_text, response)
            self._coordinator.mark_dirty()
            return entry

        if debounce:
            self._field_tier.submit(f"question:{section_index}:{question_text}", apply)
            return None
        return apply()

    def upsert_talking_point_notes(
        self, section_index: int, point_text: str, notes: str, debounce: bool = False
    ) -> Optional[TalkingPointNote]:
        """Record notes against a talking point. Returns None when debounced."""
        self._require_writable("Editing notes")
        with self._lock:
            self._store.check_section_index(section_index)

        def apply() -> TalkingPointNote:
            with self._lock:
                entry = self._store.upsert_talking_point_notes(section_index, point_text, notes)
            self._coordinator.mark_dirty()
            return entry

        if debounce:
            self._field_tier.submit(f"talking_point:{section_index}:{point_text}", apply)
            return None
        return apply()

    def add_general_note(self, section_index: int, content: str) -> SectionNote:
        self._require_writable("Adding notes")
        with self._lock:
            note = self._store.add_general_note(section_index, content)
        self._coordinator.mark_dirty()
        logger.info("general_note_added", meeting_id=self.meeting_id, section_index=section_index, note_id=note.id)
        return note

    def remove_general_note(self, section_index: int, note_id: int) -> bool:
        self._require_writable("Removing notes")
        with self._lock:
            removed = self._store.remove_general_note(section_index, note_id)
        if removed:
            self._coordinator.mark_dirty()
        return removed

    def set_text_field(self, field: str, value: str, debounce: bool = False) -> None:
        """Replace one of the free-text notes fields."""
        self._require_writable("Editing notes")
        field = self._check_field(field)

        def apply() -> None:
            with self._lock:
                self._text[field] = value
            self._coordinator.mark_dirty()

        if debounce:
            self._text_tier.submit(field, apply)
        else:
            apply()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush_pending_edits(self) -> int:
        """Apply debounced edits locally (blur). Returns how many ran."""
        return self._field_tier.flush_all() + self._text_tier.flush_all()

    def save_now(self) -> PersistenceState:
        """Apply pending field edits, then write the document immediately."""
        self.flush_pending_edits()
        self._coordinator.flush_now()
        return self._coordinator.state

    def write_through(self, fields: Dict[str, Any]) -> None:
        """Immediate write used for status changes; carries unsaved notes along."""
        self.flush_pending_edits()
        self._coordinator.write_through(fields)

    def close(self, flush: bool = True) -> bool:
        """Teardown. With ``flush`` pending edits are applied and saved once."""
        if flush:
            self.flush_pending_edits()
        else:
            self._field_tier.cancel_all()
            self._text_tier.cancel_all()
        saved = self._coordinator.close(flush=flush)
        logger.info("notes_session_closed", meeting_id=self.meeting_id, flushed=flush, saved=saved)
        return saved

    def export(self, meeting_name: Optional[str] = None) -> NotesExport:
        """Snapshot of the current local notes, including unsaved edits."""
        self.flush_pending_edits()
        with self._lock:
            meeting = self._meeting
            if meeting_name is not None:
                meeting = meeting.model_copy(update={"meeting_name": meeting_name})
            return build_notes_export(
                meeting,
                structured_notes=self._store.notes,
                now=self._clock(),
                **self._text,
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_writable(self, action: str) -> None:
        permissions = resolve_permissions(self._status_provider())
        if not permissions.can_write_notes:
            logger.info("notes_edit_denied", meeting_id=self.meeting_id, reason=permissions.restriction_reason)
            raise PermissionDeniedError(
                action, permissions.restriction_reason, context={"meeting_id": self.meeting_id}
            )

    def _edit_dropped(self, key: str, exc: Exception) -> None:
        # e.g. the template lost the section while the edit was debounced
        logger.warning("debounced_edit_dropped", meeting_id=self.meeting_id, key=key, error=str(exc))
        self._coordinator.record_error(f"Edit to {key} could not be applied: {exc}")

    @staticmethod
    def _check_field(field: str) -> str:
        if field not in NOTES_TEXT_FIELDS:
            raise ValidationError(
                f"Unknown notes field: {field}", context={"allowed": list(NOTES_TEXT_FIELDS)}
            )
        return field
