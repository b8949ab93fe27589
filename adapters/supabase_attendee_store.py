"""
Supabase-backed attendee store adapter.

Implements AttendeeStorePort against ``meeting_attendees`` with the
``people`` / ``departments`` join for display fields.
"""

from __future__ import annotations

from typing import Any, Dict, List

from supabase import Client

from adapters.supabase_client import execute_query
from domain.models import Attendee
from shared_utils.constants import LogScope, Tables
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

ATTENDEE_SELECT = (
    "meeting_id, person_id, role_in_meeting, attendance_status, "
    "people(first_name, last_name, email, role_title, departments(department_name))"
)


class SupabaseAttendeeStoreAdapter:
    """PostgREST implementation of AttendeeStorePort.

    Rows are keyed by (``meeting_id``, ``person_id``).
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # AttendeeStorePort implementation
    # ------------------------------------------------------------------

    def list_attendees(self, meeting_id: int) -> List[Attendee]:
        result = execute_query(
            self._client.table(Tables.MEETING_ATTENDEES).select(ATTENDEE_SELECT).eq("meeting_id", meeting_id),
            "list_attendees",
            meeting_id=meeting_id,
        )
        return [self._from_row(row) for row in result.data or []]

    def insert_attendees(self, meeting_id: int, attendees: List[Attendee]) -> None:
        if not attendees:
            return
        rows = [self._to_row(meeting_id, attendee) for attendee in attendees]
        execute_query(
            self._client.table(Tables.MEETING_ATTENDEES).insert(rows),
            "insert_attendees",
            meeting_id=meeting_id,
            count=len(rows),
        )
        logger.info("supabase_attendees_inserted", meeting_id=meeting_id, count=len(rows))

    def update_attendee(self, meeting_id: int, person_id: int, fields: Dict[str, Any]) -> None:
        execute_query(
            self._client.table(Tables.MEETING_ATTENDEES)
            .update(fields)
            .eq("meeting_id", meeting_id)
            .eq("person_id", person_id),
            "update_attendee",
            meeting_id=meeting_id,
            person_id=person_id,
        )
        logger.info("supabase_attendee_updated", meeting_id=meeting_id, person_id=person_id, fields=sorted(fields))

    def delete_attendee(self, meeting_id: int, person_id: int) -> None:
        execute_query(
            self._client.table(Tables.MEETING_ATTENDEES)
            .delete()
            .eq("meeting_id", meeting_id)
            .eq("person_id", person_id),
            "delete_attendee",
            meeting_id=meeting_id,
            person_id=person_id,
        )
        logger.info("supabase_attendee_deleted", meeting_id=meeting_id, person_id=person_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_row(meeting_id: int, attendee: Attendee) -> Dict[str, Any]:
        return {
            "meeting_id": meeting_id,
            "person_id": attendee.person_id,
            "role_in_meeting": attendee.role_in_meeting.value,
            "attendance_status": attendee.attendance_status.value,
        }

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Attendee:
        person = row.get("people") or {}
        department = person.get("departments") or {}
        return Attendee(
            meeting_id=row.get("meeting_id"),
            person_id=row["person_id"],
            role_in_meeting=row.get("role_in_meeting") or "required",
            attendance_status=row.get("attendance_status") or "invited",
            first_name=person.get("first_name"),
            last_name=person.get("last_name"),
            email=person.get("email"),
            role_title=person.get("role_title"),
            department_name=department.get("department_name"),
        )
