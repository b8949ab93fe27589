"""
Supabase-backed meeting store adapter.

Implements MeetingStorePort against the ``meetings`` table.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from supabase import Client

from adapters.supabase_client import SERVICE_NAME, execute_query
from domain.models import Meeting
from shared_utils.constants import LogScope, Tables
from shared_utils.error_handler import ExternalServiceError, NotFoundError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class SupabaseMeetingStoreAdapter:
    """PostgREST implementation of MeetingStorePort.

    Table key: ``meeting_id``. Attendee rows cascade on delete.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # MeetingStorePort implementation
    # ------------------------------------------------------------------

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        """Retrieve a single meeting row by ID."""
        result = execute_query(
            self._client.table(Tables.MEETINGS).select("*").eq("meeting_id", meeting_id).limit(1),
            "get_meeting",
            meeting_id=meeting_id,
        )
        if not result.data:
            return None
        return Meeting.model_validate(result.data[0])

    def create_meeting(self, fields: Dict[str, Any]) -> Meeting:
        """Insert a meeting row and return it with its assigned id."""
        result = execute_query(
            self._client.table(Tables.MEETINGS).insert(fields),
            "create_meeting",
            meeting_name=fields.get("meeting_name"),
        )
        if not result.data:
            raise ExternalServiceError(SERVICE_NAME, "create_meeting returned no row")

        meeting = Meeting.model_validate(result.data[0])
        logger.info("supabase_meeting_created", meeting_id=meeting.meeting_id)
        return meeting

    def update_meeting(self, meeting_id: int, fields: Dict[str, Any]) -> None:
        """Partially update a meeting row."""
        result = execute_query(
            self._client.table(Tables.MEETINGS).update(fields).eq("meeting_id", meeting_id),
            "update_meeting",
            meeting_id=meeting_id,
        )
        if not result.data:
            raise NotFoundError("Meeting", meeting_id)
        logger.info("supabase_meeting_updated", meeting_id=meeting_id, fields=sorted(fields))

    def delete_meeting(self, meeting_id: int) -> None:
        """Delete a meeting row (attendees cascade in the database)."""
        execute_query(
            self._client.table(Tables.MEETINGS).delete().eq("meeting_id", meeting_id),
            "delete_meeting",
            meeting_id=meeting_id,
        )
        logger.info("supabase_meeting_deleted", meeting_id=meeting_id)
