"""
In-memory meeting database for local development and tests.

Implements MeetingStorePort, AttendeeStorePort and ReferenceStorePort over
plain dicts. Used when no Supabase URL is configured.

NOT for production — no persistence across restarts.
"""

from __future__ import annotations

import copy
import itertools
import threading
from typing import Any, Dict, List, Optional, Tuple

from domain.models import (
    Attendee,
    Initiative,
    Meeting,
    MeetingStatus,
    MeetingType,
    Person,
    Phase,
    to_iso,
    utc_now,
)
from shared_utils.constants import LogScope
from shared_utils.error_handler import ExternalServiceError, NotFoundError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemoryMeetingDatabase:
    """Dict-backed implementation of all three store ports.

    Rows are stored as plain JSON dicts, mirroring what PostgREST returns,
    and deep-copied on the way in and out.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._meetings: Dict[int, Dict[str, Any]] = {}
        self._attendees: Dict[Tuple[int, int], Dict[str, Any]] = {}
        self._meeting_types: Dict[int, MeetingType] = {}
        self._phases: Dict[int, Phase] = {}
        self._initiatives: Dict[int, Initiative] = {}
        self._people: Dict[int, Person] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Seeding (reference tables are read-only through the ports)
    # ------------------------------------------------------------------

    def add_meeting_type(self, meeting_type: MeetingType) -> None:
        self._meeting_types[meeting_type.meeting_type_id] = meeting_type

    def add_phase(self, phase: Phase) -> None:
        self._phases[phase.phase_id] = phase

    def add_initiative(self, initiative: Initiative) -> None:
        self._initiatives[initiative.initiative_id] = initiative

    def add_person(self, person: Person) -> None:
        self._people[person.person_id] = person

    # ------------------------------------------------------------------
    # MeetingStorePort implementation
    # ------------------------------------------------------------------

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        with self._lock:
            row = self._meetings.get(meeting_id)
            row = copy.deepcopy(row) if row is not None else None
        return Meeting.model_validate(row) if row is not None else None

    def create_meeting(self, fields: Dict[str, Any]) -> Meeting:
        now = to_iso(utc_now())
        with self._lock:
            meeting_id = next(self._ids)
            row = {
                "status": MeetingStatus.NOT_SCHEDULED.value,
                "structured_notes": {"agenda_sections": []},
                **copy.deepcopy(fields),
                "meeting_id": meeting_id,
                "created_at": now,
                "updated_at": now,
            }
            self._meetings[meeting_id] = row
            snapshot = copy.deepcopy(row)

        logger.info("inmemory_meeting_created", meeting_id=meeting_id)
        return Meeting.model_validate(snapshot)

    def update_meeting(self, meeting_id: int, fields: Dict[str, Any]) -> None:
        with self._lock:
            row = self._meetings.get(meeting_id)
            if row is None:
                raise NotFoundError("Meeting", meeting_id)
            row.update(copy.deepcopy(fields))
            row["updated_at"] = to_iso(utc_now())
        logger.info("inmemory_meeting_updated", meeting_id=meeting_id, fields=sorted(fields))

    def delete_meeting(self, meeting_id: int) -> None:
        with self._lock:
            self._meetings.pop(meeting_id, None)
            for key in [key for key in self._attendees if key[0] == meeting_id]:
                del self._attendees[key]
        logger.info("inmemory_meeting_deleted", meeting_id=meeting_id)

    # ------------------------------------------------------------------
    # AttendeeStorePort implementation
    # ------------------------------------------------------------------

    def list_attendees(self, meeting_id: int) -> List[Attendee]:
        with self._lock:
            rows = [copy.deepcopy(row) for key, row in self._attendees.items() if key[0] == meeting_id]
        return [self._join_person(row) for row in rows]

    def insert_attendees(self, meeting_id: int, attendees: List[Attendee]) -> None:
        with self._lock:
            if meeting_id not in self._meetings:
                raise NotFoundError("Meeting", meeting_id)
            keys = [(meeting_id, attendee.person_id) for attendee in attendees]
            duplicates = [key[1] for key in keys if key in self._attendees]
            if duplicates or len(set(keys)) != len(keys):
                raise ExternalServiceError(
                    "InMemory", "duplicate attendee rows", context={"person_ids": duplicates}
                )
            for key, attendee in zip(keys, attendees):
                self._attendees[key] = {
                    "meeting_id": meeting_id,
                    "person_id": attendee.person_id,
                    "role_in_meeting": attendee.role_in_meeting.value,
                    "attendance_status": attendee.attendance_status.value,
                }
        logger.info("inmemory_attendees_inserted", meeting_id=meeting_id, count=len(attendees))

    def update_attendee(self, meeting_id: int, person_id: int, fields: Dict[str, Any]) -> None:
        with self._lock:
            row = self._attendees.get((meeting_id, person_id))
            if row is not None:
                row.update(copy.deepcopy(fields))
        logger.info("inmemory_attendee_updated", meeting_id=meeting_id, person_id=person_id)

    def delete_attendee(self, meeting_id: int, person_id: int) -> None:
        with self._lock:
            self._attendees.pop((meeting_id, person_id), None)
        logger.info("inmemory_attendee_deleted", meeting_id=meeting_id, person_id=person_id)

    # ------------------------------------------------------------------
    # ReferenceStorePort implementation
    # ------------------------------------------------------------------

    def get_meeting_type(self, meeting_type_id: int) -> Optional[MeetingType]:
        return self._meeting_types.get(meeting_type_id)

    def get_phase(self, phase_id: int) -> Optional[Phase]:
        return self._phases.get(phase_id)

    def get_initiative(self, initiative_id: int) -> Optional[Initiative]:
        return self._initiatives.get(initiative_id)

    def list_people(self) -> List[Person]:
        return sorted(self._people.values(), key=lambda p: (p.last_name or "", p.first_name or ""))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _join_person(self, row: Dict[str, Any]) -> Attendee:
        person = self._people.get(row["person_id"])
        if person is not None:
            row.update(person.model_dump(exclude={"person_id"}))
        return Attendee.model_validate(row)
