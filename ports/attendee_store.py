"""
Port interface for the meeting_attendees table.

Implementations: SupabaseAttendeeStoreAdapter, InMemoryMeetingDatabase (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable

from domain.models import Attendee


@runtime_checkable
class AttendeeStorePort(Protocol):
    """Attendee rows keyed by (meeting_id, person_id)."""

    def list_attendees(self, meeting_id: int) -> List[Attendee]:
        """List a meeting's attendees joined with their people rows.

        Raises:
            ExternalServiceError: If the store is unreachable.
        """
        ...

    def insert_attendees(self, meeting_id: int, attendees: List[Attendee]) -> None:
        """Insert attendee rows in one bulk write.

        Only ``person_id``, ``role_in_meeting`` and ``attendance_status``
        are written; display fields come from the people join on read.

        Raises:
            ExternalServiceError: If the insert fails.
        """
        ...

    def update_attendee(self, meeting_id: int, person_id: int, fields: Dict[str, Any]) -> None:
        """Partially update one attendee row.

        Raises:
            ExternalServiceError: If the update fails.
        """
        ...

    def delete_attendee(self, meeting_id: int, person_id: int) -> None:
        """Delete one attendee row.

        Raises:
            ExternalServiceError: If the delete fails.
        """
        ...
