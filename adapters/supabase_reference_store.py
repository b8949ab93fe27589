"""
Supabase-backed reference store adapter.

Read-only lookups for meeting types, phases, initiatives and people.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from supabase import Client

from adapters.supabase_client import execute_query
from domain.models import Initiative, MeetingType, Person, Phase
from shared_utils.constants import Tables


PEOPLE_SELECT = "person_id, first_name, last_name, email, role_title, departments(department_name)"


class SupabaseReferenceStoreAdapter:
    """PostgREST implementation of ReferenceStorePort."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def get_meeting_type(self, meeting_type_id: int) -> Optional[MeetingType]:
        row = self._first(
            Tables.MEETING_TYPES,
            "meeting_type_id, type_name, description, template_structure",
            "meeting_type_id",
            meeting_type_id,
        )
        return MeetingType.model_validate(row) if row else None

    def get_phase(self, phase_id: int) -> Optional[Phase]:
        row = self._first(Tables.PHASES, "phase_id, phase_name, phase_number", "phase_id", phase_id)
        return Phase.model_validate(row) if row else None

    def get_initiative(self, initiative_id: int) -> Optional[Initiative]:
        row = self._first(Tables.INITIATIVES, "initiative_id, initiative_name", "initiative_id", initiative_id)
        return Initiative.model_validate(row) if row else None

    def list_people(self) -> List[Person]:
        result = execute_query(
            self._client.table(Tables.PEOPLE).select(PEOPLE_SELECT).order("last_name").order("first_name"),
            "list_people",
        )
        return [self._person_from_row(row) for row in result.data or []]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _first(self, table: str, columns: str, key: str, value: int) -> Optional[Dict[str, Any]]:
        result = execute_query(
            self._client.table(table).select(columns).eq(key, value).limit(1),
            f"get_{table}",
            **{key: value},
        )
        return result.data[0] if result.data else None

    @staticmethod
    def _person_from_row(row: Dict[str, Any]) -> Person:
        department = row.get("departments") or {}
        return Person(
            person_id=row["person_id"],
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            email=row.get("email"),
            role_title=row.get("role_title"),
            department_name=department.get("department_name"),
        )
