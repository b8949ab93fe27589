"""
Tests for services.notes_service.NotesSession.

Uses the in-memory store and the FakeTimerFactory, so autosave and both
debounce tiers only run when a test fires them.
"""

import pytest

from domain.models import MeetingStatus
from services.notes_service import NOTES_TEXT_FIELDS, NotesSession
from shared_utils.error_handler import PermissionDeniedError, ValidationError


FIELD_DELAY = 0.5
TEXT_DELAY = 1.0
AUTOSAVE_DELAY = 30.0


class StatusBox:
    def __init__(self, status: MeetingStatus) -> None:
        self.status = status

    def __call__(self) -> MeetingStatus:
        return self.status


@pytest.fixture()
def status() -> StatusBox:
    return StatusBox(MeetingStatus.IN_PROGRESS)


@pytest.fixture()
def meeting(make_meeting):
    return make_meeting(MeetingStatus.IN_PROGRESS, meeting_summary="Stored summary")


@pytest.fixture()
def session(meeting, sample_template, memory_db, status, timer_factory, clock) -> NotesSession:
    return NotesSession(
        meeting=meeting,
        template=sample_template,
        meeting_store=memory_db,
        status_provider=status,
        autosave_seconds=AUTOSAVE_DELAY,
        field_debounce_seconds=FIELD_DELAY,
        text_debounce_seconds=TEXT_DELAY,
        timer_factory=timer_factory,
        clock=clock,
    )


def _stored(memory_db, meeting_id):
    return memory_db.get_meeting(meeting_id)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class TestGating:
    @pytest.mark.parametrize(
        "blocked", [MeetingStatus.NOT_SCHEDULED, MeetingStatus.SCHEDULED, MeetingStatus.CANCELLED]
    )
    def test_edits_denied_outside_live_or_completed(self, session, status, blocked) -> None:
        status.status = blocked
        with pytest.raises(PermissionDeniedError):
            session.upsert_question_response(1, "What slows you down?", "x")
        with pytest.raises(PermissionDeniedError):
            session.add_general_note(0, "x")
        with pytest.raises(PermissionDeniedError):
            session.set_text_field("meeting_summary", "x")
        assert not session.coordinator.dirty

    def test_completed_meeting_notes_still_editable(self, session, status) -> None:
        status.status = MeetingStatus.COMPLETED
        session.set_text_field("overall_assessment", "Went well")
        assert session.text_field("overall_assessment") == "Went well"

    def test_unknown_field(self, session) -> None:
        with pytest.raises(ValidationError, match="Unknown notes field"):
            session.set_text_field("agenda", "x")

    def test_bad_index_rejected_before_debounce(self, session) -> None:
        with pytest.raises(ValidationError):
            session.upsert_question_response(9, "q", "r", debounce=True)
        assert session.pending_edits == []


# ---------------------------------------------------------------------------
# Local edits and autosave
# ---------------------------------------------------------------------------


class TestEdits:
    def test_immediate_edit_marks_dirty(self, session, timer_factory) -> None:
        entry = session.upsert_question_response(1, "What slows you down?", "Approvals")
        assert entry.response == "Approvals"
        assert session.get_question_response(1, "What slows you down?") == "Approvals"
        assert session.state.dirty
        assert len(timer_factory.active(AUTOSAVE_DELAY)) == 1

    def test_field_debounce_coalesces(self, session, timer_factory) -> None:
        for text in ("A", "Ap", "App"):
            assert session.upsert_talking_point_notes(0, "Welcome", text, debounce=True) is None

        assert session.pending_edits == ["talking_point:0:Welcome"]
        assert session.get_talking_point_notes(0, "Welcome") == ""
        assert not session.state.dirty

        timer_factory.fire_all(FIELD_DELAY)
        assert session.get_talking_point_notes(0, "Welcome") == "App"
        assert session.state.dirty

    def test_text_debounce(self, session, timer_factory) -> None:
        session.set_text_field("meeting_summary", "Draft", debounce=True)
        assert session.text_field("meeting_summary") == "Stored summary"
        timer_factory.fire_all(TEXT_DELAY)
        assert session.text_field("meeting_summary") == "Draft"

    def test_autosave_writes_whole_document(self, session, memory_db, meeting, timer_factory) -> None:
        session.add_general_note(2, "Follow up with finance")
        session.set_text_field("unstructured_notes", "Raw notes")

        timer_factory.fire_all(AUTOSAVE_DELAY)

        stored = _stored(memory_db, meeting.meeting_id)
        assert stored.unstructured_notes == "Raw notes"
        assert stored.meeting_summary == "Stored summary"
        assert stored.structured_notes.agenda_sections[2].notes[0].content == "Follow up with finance"
        assert stored.structured_notes.agenda_sections[0] is None
        assert not session.state.dirty

    def test_debounced_edit_outliving_its_section_is_reported(self, session, sample_template, timer_factory) -> None:
        session.upsert_talking_point_notes(1, "Current process", "Manual", debounce=True)
        shrunk = sample_template.model_copy(update={"agenda_sections": sample_template.agenda_sections[:1]})
        session.attach_template(shrunk)

        timer_factory.fire_all(FIELD_DELAY)

        assert session.pending_edits == []
        assert not session.state.dirty
        assert "talking_point:1:Current process" in session.state.last_error

    def test_failed_pending_edit_does_not_block_save_now(self, session, sample_template, memory_db, meeting) -> None:
        session.upsert_talking_point_notes(1, "Current process", "Manual", debounce=True)
        session.set_text_field("meeting_summary", "Kept", debounce=True)
        shrunk = sample_template.model_copy(update={"agenda_sections": sample_template.agenda_sections[:1]})
        session.attach_template(shrunk)

        session.save_now()

        assert _stored(memory_db, meeting.meeting_id).meeting_summary == "Kept"

    def test_remove_note(self, session) -> None:
        note = session.add_general_note(0, "Temp")
        assert session.remove_general_note(0, note.id)
        assert session.get_section_notes(0) == []
        assert not session.remove_general_note(0, note.id)


# ---------------------------------------------------------------------------
# Save Now, write-through and teardown
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_save_now_applies_pending_first(self, session, memory_db, meeting) -> None:
        session.upsert_question_response(1, "Which tools do you use?", "Spreadsheets", debounce=True)
        state = session.save_now()

        assert not state.dirty
        assert state.last_saved_at is not None
        stored = _stored(memory_db, meeting.meeting_id)
        assert stored.structured_notes.agenda_sections[1].questions[0].response == "Spreadsheets"

    def test_write_through_carries_notes(self, session, memory_db, meeting) -> None:
        session.set_text_field("meeting_summary", "Final summary", debounce=True)
        session.write_through({"status": "completed"})

        stored = _stored(memory_db, meeting.meeting_id)
        assert stored.status is MeetingStatus.COMPLETED
        assert stored.meeting_summary == "Final summary"

    def test_close_flushes(self, session, memory_db, meeting, timer_factory) -> None:
        session.set_text_field("free_form_insights", "Insight", debounce=True)
        assert session.close() is True
        assert _stored(memory_db, meeting.meeting_id).free_form_insights == "Insight"
        assert timer_factory.active() == []

    def test_close_without_flush_discards(self, session, memory_db, meeting) -> None:
        session.set_text_field("free_form_insights", "Insight")
        session.close(flush=False)
        assert _stored(memory_db, meeting.meeting_id).free_form_insights is None

    def test_snapshot_shape(self, session) -> None:
        snapshot = session.snapshot()
        assert set(snapshot) == {"structured_notes", *NOTES_TEXT_FIELDS}


class TestExport:
    def test_includes_unsaved_edits(self, session, meeting) -> None:
        session.add_general_note(0, "Unsaved note")
        session.set_text_field("meeting_summary", "Pending", debounce=True)

        export = session.export()
        assert export.meeting_id == meeting.meeting_id
        assert export.meeting_summary == "Pending"
        assert export.structured_notes["agenda_sections"][0]["notes"][0]["content"] == "Unsaved note"

    def test_meeting_name_override(self, session) -> None:
        assert session.export(meeting_name="Renamed").meeting_name == "Renamed"

    def test_apply_meeting_fields(self, session) -> None:
        session.apply_meeting_fields({"meeting_name": "Renamed"})
        assert session.export().meeting_name == "Renamed"
