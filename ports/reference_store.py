"""
Port interface for read-only reference tables.

Implementations: SupabaseReferenceStoreAdapter, InMemoryMeetingDatabase (adapters/)
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from domain.models import Initiative, MeetingType, Person, Phase


@runtime_checkable
class ReferenceStorePort(Protocol):
    """Lookups for meeting types, phases, initiatives and people."""

    def get_meeting_type(self, meeting_type_id: int) -> Optional[MeetingType]:
        ...

    def get_phase(self, phase_id: int) -> Optional[Phase]:
        ...

    def get_initiative(self, initiative_id: int) -> Optional[Initiative]:
        ...

    def list_people(self) -> List[Person]:
        """All people, ordered by last then first name, for the attendee picker."""
        ...
