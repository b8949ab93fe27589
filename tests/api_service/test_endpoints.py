"""
Tests for the FastAPI endpoints in api_service.src.main.

The DI container is pointed at the seeded in-memory database, so requests
run through the real services without a remote store.
"""

import re

import pytest
from fastapi.testclient import TestClient

from api_service.src.main import app, limiter
from domain.models import AttendanceStatus, Attendee, AttendeeRole, MeetingStatus
from shared_utils.constants import APIEndpoints
from shared_utils.di_container import get_di_container


client = TestClient(app)


@pytest.fixture(autouse=True)
def container(memory_db):
    """Fresh container wired to the seeded in-memory database."""
    container = get_di_container()
    container.reset()
    container._memory_database = memory_db
    limiter.reset()
    yield container
    container.reset()


def _url(template: str, **params) -> str:
    return template.format(**params)


def _meeting_url(meeting_id: int) -> str:
    return _url(APIEndpoints.MEETING, meeting_id=meeting_id)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health_check() -> None:
    response = client.get(APIEndpoints.HEALTH)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["store_backend"] == "memory"


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class TestCreateMeeting:
    def test_creates_with_attendees(self, memory_db) -> None:
        response = client.post(APIEndpoints.MEETINGS, json={
            "meeting_name": "Kickoff",
            "meeting_type_id": 1,
            "attendees": [{"person_id": 1, "role_in_meeting": "organizer"}, {"person_id": 2}],
        })

        assert response.status_code == 201
        body = response.json()
        assert body["complete"] is True
        assert body["meeting"]["status"] == "not_scheduled"
        meeting_id = body["meeting"]["meeting_id"]
        assert [a.person_id for a in memory_db.list_attendees(meeting_id)] == [1, 2]

    def test_missing_name(self) -> None:
        response = client.post(APIEndpoints.MEETINGS, json={"duration_minutes": 30})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid request body"

    def test_blank_name(self) -> None:
        response = client.post(APIEndpoints.MEETINGS, json={"meeting_name": "   "})
        assert response.status_code == 400
        assert "meeting_name" in response.json()["error"]["message"]


class TestGetMeeting:
    def test_view(self, make_meeting) -> None:
        meeting = make_meeting(MeetingStatus.SCHEDULED)
        response = client.get(_meeting_url(meeting.meeting_id))

        assert response.status_code == 200
        body = response.json()
        assert body["meeting"]["meeting_name"] == "Quarterly Review"
        assert body["meeting_type"]["type_name"] == "Discovery Session"
        assert len(body["template"]["agenda_sections"]) == 3
        assert body["permissions"]["can_start_meeting"] is True
        assert body["persistence"]["dirty"] is False

    def test_missing(self) -> None:
        response = client.get(_meeting_url(404))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestUpdateMeeting:
    def test_updates_open_view(self, make_meeting) -> None:
        meeting = make_meeting()
        client.get(_meeting_url(meeting.meeting_id))

        response = client.patch(_meeting_url(meeting.meeting_id), json={"meeting_name": "Renamed"})

        assert response.status_code == 200
        assert response.json()["meeting_name"] == "Renamed"
        view = client.get(_meeting_url(meeting.meeting_id)).json()
        assert view["meeting"]["meeting_name"] == "Renamed"

    def test_unknown_field(self, make_meeting) -> None:
        meeting = make_meeting()
        response = client.patch(_meeting_url(meeting.meeting_id), json={"status": "completed"})
        assert response.status_code == 400

    def test_locked_in_progress(self, make_meeting) -> None:
        meeting = make_meeting(MeetingStatus.IN_PROGRESS)
        response = client.patch(_meeting_url(meeting.meeting_id), json={"meeting_name": "Late"})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"


class TestDeleteMeeting:
    def test_delete_not_scheduled(self, make_meeting, memory_db) -> None:
        meeting = make_meeting()
        response = client.delete(_meeting_url(meeting.meeting_id))
        assert response.status_code == 200
        assert response.json() == {"meeting_id": meeting.meeting_id, "deleted": True}
        assert memory_db.get_meeting(meeting.meeting_id) is None

    def test_delete_scheduled_denied(self, make_meeting, memory_db) -> None:
        meeting = make_meeting(MeetingStatus.SCHEDULED)
        response = client.delete(_meeting_url(meeting.meeting_id))
        assert response.status_code == 403
        assert memory_db.get_meeting(meeting.meeting_id) is not None


class TestTemplate:
    def test_replace_template(self, make_meeting, sample_template_document) -> None:
        meeting = make_meeting()
        client.get(_meeting_url(meeting.meeting_id))
        sample_template_document["agenda_sections"].append(
            {"section": "Extra", "purpose": "More", "time_minutes": 5}
        )

        response = client.put(
            _url(APIEndpoints.TEMPLATE, meeting_id=meeting.meeting_id), json=sample_template_document
        )

        assert response.status_code == 200
        assert response.json()["structural_change"] is True
        view = client.get(_meeting_url(meeting.meeting_id)).json()
        assert view["template"]["agenda_sections"][-1]["section"] == "Extra"

    def test_invalid_template(self, make_meeting) -> None:
        meeting = make_meeting()
        response = client.put(
            _url(APIEndpoints.TEMPLATE, meeting_id=meeting.meeting_id),
            json={"agenda_sections": [{"section": "A", "time_minutes": 0}]},
        )
        assert response.status_code == 400


def test_permissions(make_meeting) -> None:
    meeting = make_meeting(MeetingStatus.COMPLETED)
    response = client.get(_url(APIEndpoints.PERMISSIONS, meeting_id=meeting.meeting_id))
    assert response.status_code == 200
    body = response.json()
    assert body["can_edit_notes"] is True
    assert body["can_change_status"] is False
    assert body["restriction_reason"] == "Meeting is completed - only notes can be edited"


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_prompt(self, make_meeting) -> None:
        meeting = make_meeting(MeetingStatus.SCHEDULED)
        response = client.get(_url(APIEndpoints.TRANSITION, meeting_id=meeting.meeting_id, target="cancelled"))
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Cancel Meeting"
        assert body["tone"] == "danger"

    def test_illegal_prompt(self, make_meeting) -> None:
        meeting = make_meeting(MeetingStatus.NOT_SCHEDULED)
        response = client.get(_url(APIEndpoints.TRANSITION, meeting_id=meeting.meeting_id, target="completed"))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ILLEGAL_TRANSITION"

    def test_commit(self, make_meeting, memory_db) -> None:
        meeting = make_meeting(MeetingStatus.NOT_SCHEDULED)
        response = client.post(
            _url(APIEndpoints.STATUS, meeting_id=meeting.meeting_id), json={"status": "scheduled"}
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["previous_status"] == "not_scheduled"
        assert memory_db.get_meeting(meeting.meeting_id).status is MeetingStatus.SCHEDULED

    def test_commit_requires_status(self, make_meeting) -> None:
        meeting = make_meeting()
        response = client.post(_url(APIEndpoints.STATUS, meeting_id=meeting.meeting_id), json={})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "status is required"


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class TestNotes:
    @pytest.fixture()
    def live(self, make_meeting):
        return make_meeting(MeetingStatus.IN_PROGRESS)

    def test_question_response(self, live) -> None:
        response = client.put(
            _url(APIEndpoints.QUESTION_RESPONSE, meeting_id=live.meeting_id, section_index=1),
            json={"question_text": "What slows you down?", "response": "Approvals"},
        )
        assert response.status_code == 200
        assert response.json()["question_hash"] == "q1_1"
        assert response.json()["response"] == "Approvals"

    def test_debounced_question_response(self, live) -> None:
        response = client.put(
            _url(APIEndpoints.QUESTION_RESPONSE, meeting_id=live.meeting_id, section_index=1),
            json={"question_text": "What slows you down?", "response": "Appr", "debounce": True},
        )
        assert response.status_code == 202
        assert response.json() == {"pending": True}

    def test_talking_point_notes(self, live) -> None:
        response = client.put(
            _url(APIEndpoints.TALKING_POINT_NOTES, meeting_id=live.meeting_id, section_index=0),
            json={"point_text": "Welcome", "notes": "Everyone joined"},
        )
        assert response.status_code == 200
        assert response.json()["notes"] == "Everyone joined"

    def test_section_index_out_of_range(self, live) -> None:
        response = client.put(
            _url(APIEndpoints.TALKING_POINT_NOTES, meeting_id=live.meeting_id, section_index=9),
            json={"point_text": "Welcome", "notes": "x"},
        )
        assert response.status_code == 400

    def test_add_and_remove_general_note(self, live) -> None:
        notes_url = _url(APIEndpoints.SECTION_NOTES, meeting_id=live.meeting_id, section_index=2)
        created = client.post(notes_url, json={"content": "Send the deck"})
        assert created.status_code == 201
        note_id = created.json()["id"]
        assert created.json()["type"] == "general_note"

        removed = client.delete(
            _url(APIEndpoints.SECTION_NOTE, meeting_id=live.meeting_id, section_index=2, note_id=note_id)
        )
        assert removed.json() == {"note_id": note_id, "removed": True}

    def test_notes_locked_before_start(self, make_meeting) -> None:
        meeting = make_meeting(MeetingStatus.SCHEDULED)
        response = client.post(
            _url(APIEndpoints.SECTION_NOTES, meeting_id=meeting.meeting_id, section_index=0),
            json={"content": "too early"},
        )
        assert response.status_code == 403

    def test_text_field_and_save(self, live, memory_db) -> None:
        field_url = _url(APIEndpoints.NOTES_FIELD, meeting_id=live.meeting_id, field="meeting_summary")
        response = client.put(field_url, json={"value": "Good session"})
        assert response.status_code == 200
        assert response.json() == {"field": "meeting_summary", "pending": False}

        saved = client.post(_url(APIEndpoints.NOTES_SAVE, meeting_id=live.meeting_id))
        assert saved.status_code == 200
        assert saved.json()["dirty"] is False
        assert memory_db.get_meeting(live.meeting_id).meeting_summary == "Good session"

    def test_unknown_text_field(self, live) -> None:
        response = client.put(
            _url(APIEndpoints.NOTES_FIELD, meeting_id=live.meeting_id, field="agenda"), json={"value": "x"}
        )
        assert response.status_code == 400

    def test_export(self, live) -> None:
        client.put(
            _url(APIEndpoints.NOTES_FIELD, meeting_id=live.meeting_id, field="free_form_insights"),
            json={"value": "Unsaved insight"},
        )
        response = client.get(_url(APIEndpoints.NOTES_EXPORT, meeting_id=live.meeting_id))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        disposition = response.headers["content-disposition"]
        assert re.fullmatch(
            rf'attachment; filename="meeting-notes-{live.meeting_id}-\d{{4}}-\d{{2}}-\d{{2}}\.json"', disposition
        )
        body = response.json()
        assert body["meeting_name"] == "Quarterly Review"
        assert body["free_form_insights"] == "Unsaved insight"


# ---------------------------------------------------------------------------
# Attendees
# ---------------------------------------------------------------------------


class TestAttendees:
    @pytest.fixture()
    def meeting(self, make_meeting, memory_db):
        meeting = make_meeting(MeetingStatus.SCHEDULED)
        memory_db.insert_attendees(meeting.meeting_id, [Attendee(person_id=1, role_in_meeting="organizer")])
        return meeting

    def test_add(self, meeting, memory_db) -> None:
        response = client.post(
            _url(APIEndpoints.ATTENDEES, meeting_id=meeting.meeting_id),
            json={"person_id": 2, "role_in_meeting": "optional"},
        )
        assert response.status_code == 200
        assert response.json()["applied"] is True
        added = [a for a in memory_db.list_attendees(meeting.meeting_id) if a.person_id == 2]
        assert added[0].full_name == "Grace Hopper"

    def test_add_duplicate_skipped(self, meeting) -> None:
        response = client.post(
            _url(APIEndpoints.ATTENDEES, meeting_id=meeting.meeting_id), json={"person_id": 1}
        )
        assert response.status_code == 200
        assert response.json()["applied"] is False

    def test_update_attendance(self, meeting, memory_db) -> None:
        response = client.patch(
            _url(APIEndpoints.ATTENDEE, meeting_id=meeting.meeting_id, person_id=1),
            json={"attendance_status": "accepted"},
        )
        assert response.status_code == 200
        stored = memory_db.list_attendees(meeting.meeting_id)[0]
        assert stored.attendance_status is AttendanceStatus.ACCEPTED

    def test_rejected_attendance_leaves_role_unchanged(self, meeting, memory_db) -> None:
        response = client.patch(
            _url(APIEndpoints.ATTENDEE, meeting_id=meeting.meeting_id, person_id=1),
            json={"role_in_meeting": "optional", "attendance_status": "present"},
        )
        assert response.status_code == 400
        stored = memory_db.list_attendees(meeting.meeting_id)[0]
        assert stored.role_in_meeting is AttendeeRole.ORGANIZER

    def test_update_requires_a_field(self, meeting) -> None:
        response = client.patch(
            _url(APIEndpoints.ATTENDEE, meeting_id=meeting.meeting_id, person_id=1), json={}
        )
        assert response.status_code == 400

    def test_remove(self, meeting, memory_db) -> None:
        response = client.delete(_url(APIEndpoints.ATTENDEE, meeting_id=meeting.meeting_id, person_id=1))
        assert response.status_code == 200
        assert memory_db.list_attendees(meeting.meeting_id) == []


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestSession:
    def test_close_flushes(self, make_meeting, memory_db) -> None:
        live = make_meeting(MeetingStatus.IN_PROGRESS)
        client.put(
            _url(APIEndpoints.NOTES_FIELD, meeting_id=live.meeting_id, field="overall_assessment"),
            json={"value": "Productive"},
        )

        response = client.delete(_url(APIEndpoints.SESSION, meeting_id=live.meeting_id))

        assert response.status_code == 200
        body = response.json()
        assert body["closed"] is True
        assert body["persistence"]["dirty"] is False
        assert memory_db.get_meeting(live.meeting_id).overall_assessment == "Productive"

    def test_close_unopened(self, make_meeting) -> None:
        meeting = make_meeting()
        response = client.delete(_url(APIEndpoints.SESSION, meeting_id=meeting.meeting_id))
        assert response.json() == {"meeting_id": meeting.meeting_id, "closed": False, "persistence": None}
