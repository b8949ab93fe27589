"""
Port interface for the meetings table.

Implementations: SupabaseMeetingStoreAdapter, InMemoryMeetingDatabase (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from domain.models import Meeting


@runtime_checkable
class MeetingStorePort(Protocol):
    """Row-level CRUD on meetings. Last write wins."""

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        """Retrieve a single meeting row by ID.

        Args:
            meeting_id: Primary key.

        Returns:
            Meeting if found, None otherwise.

        Raises:
            ExternalServiceError: If the store is unreachable.
        """
        ...

    def create_meeting(self, fields: Dict[str, Any]) -> Meeting:
        """Insert a meeting row; the store assigns ``meeting_id``.

        Args:
            fields: Column values as plain JSON types.

        Returns:
            The inserted row.

        Raises:
            ExternalServiceError: If the insert fails.
        """
        ...

    def update_meeting(self, meeting_id: int, fields: Dict[str, Any]) -> None:
        """Partially update a meeting row.

        Only the given columns are written; the rest are left as stored.

        Args:
            meeting_id: Primary key.
            fields: Column values as plain JSON types.

        Raises:
            ExternalServiceError: If the update fails.
        """
        ...

    def delete_meeting(self, meeting_id: int) -> None:
        """Delete a meeting row and, by cascade, its attendee rows.

        Raises:
            ExternalServiceError: If the delete fails.
        """
        ...
