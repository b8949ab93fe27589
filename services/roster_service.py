"""
Attendee roster management with optimistic updates.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, List, Optional, Type, TypeVar, Union

from domain.models import (
    LIVE_ATTENDANCE,
    PRE_MEETING_ATTENDANCE,
    AttendanceStatus,
    Attendee,
    AttendeeRole,
    MeetingStatus,
    PermissionSet,
    Person,
)
from domain.permissions import coerce_status, resolve_permissions
from ports.attendee_store import AttendeeStorePort
from services.optimistic import MutationResult, OptimisticExecutor, RosterCommand
from shared_utils.constants import LogScope
from shared_utils.error_handler import ValidationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ROSTER)

ALREADY_ATTENDING = "Person is already an attendee"
NOT_ATTENDING = "Person is not an attendee"

E = TypeVar("E", bound=Enum)


def _coerce(enum_type: Type[E], value: Union[E, str], field: str) -> E:
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}: {value}",
            context={field: str(value), "allowed": [member.value for member in enum_type]},
        ) from exc


def build_attendee(
    person_id: int,
    role: Union[AttendeeRole, str],
    meeting_status: Union[MeetingStatus, str],
    person: Optional[Person] = None,
) -> Attendee:
    """New roster entry: ``present`` when added to a live meeting, else ``invited``."""
    attendance = (
        AttendanceStatus.PRESENT
        if coerce_status(meeting_status) == MeetingStatus.IN_PROGRESS
        else AttendanceStatus.INVITED
    )
    display = person.model_dump(exclude={"person_id"}) if person is not None else {}
    return Attendee(
        person_id=person_id,
        role_in_meeting=_coerce(AttendeeRole, role, "role_in_meeting"),
        attendance_status=attendance,
        **display,
    )


class AttendeeRosterManager:
    """Local roster for one meeting, kept in step with the attendee store.

    Every change is applied locally first and reverted if the store write
    fails. Operations the current status does not allow are skipped and
    report the restriction reason.
    """

    def __init__(
        self,
        meeting_id: int,
        attendees: List[Attendee],
        attendee_store: AttendeeStorePort,
        status_provider: Callable[[], Union[MeetingStatus, str]],
        on_change: Optional[Callable[[List[Attendee]], None]] = None,
        on_persisted: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.meeting_id = meeting_id
        self._attendees: List[Attendee] = [attendee.model_copy() for attendee in attendees]
        self._store = attendee_store
        self._status_provider = status_provider
        self._on_change = on_change
        self._on_persisted = on_persisted
        self._lock = threading.RLock()
        self._executor = OptimisticExecutor(
            get_state=lambda: self._attendees,
            set_state=self._set_attendees,
            on_success=self._persisted,
        )

    @property
    def attendees(self) -> List[Attendee]:
        with self._lock:
            return [attendee.model_copy() for attendee in self._attendees]

    @property
    def lock(self) -> threading.RLock:
        """Held for the whole of every roster operation."""
        return self._lock

    def reload(self, attendees: List[Attendee]) -> bool:
        """Adopt the stored roster. Returns True when it differed from the local one."""
        with self._lock:
            fresh = [attendee.model_copy() for attendee in attendees]
            if fresh == self._attendees:
                return False
            self._set_attendees(fresh)
        logger.info("roster_reloaded", meeting_id=self.meeting_id, attendee_count=len(fresh))
        return True

    def find(self, person_id: int) -> Optional[Attendee]:
        with self._lock:
            for attendee in self._attendees:
                if attendee.person_id == person_id:
                    return attendee.model_copy()
        return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_attendee(
        self,
        person_id: int,
        role: Union[AttendeeRole, str] = AttendeeRole.REQUIRED,
        person: Optional[Person] = None,
    ) -> MutationResult:
        with self._lock:
            status = self._status_provider()
            permissions = resolve_permissions(status)
            if not permissions.can_edit_attendees:
                return self._skip("add_attendee", person_id, permissions.restriction_reason)
            if self._index_of(person_id) is not None:
                return self._skip("add_attendee", person_id, ALREADY_ATTENDING)

            attendee = build_attendee(person_id, role, status, person)
            command = RosterCommand(
                name="add_attendee",
                apply=lambda roster: roster + [attendee],
                remote=lambda: self._store.insert_attendees(self.meeting_id, [attendee]),
            )
            return self._executor.execute(command, meeting_id=self.meeting_id, person_id=person_id)

    def remove_attendee(self, person_id: int) -> MutationResult:
        with self._lock:
            permissions = resolve_permissions(self._status_provider())
            if not permissions.can_edit_attendees:
                return self._skip("remove_attendee", person_id, permissions.restriction_reason)
            if self._index_of(person_id) is None:
                return self._skip("remove_attendee", person_id, NOT_ATTENDING)

            command = RosterCommand(
                name="remove_attendee",
                apply=lambda roster: [a for a in roster if a.person_id != person_id],
                remote=lambda: self._store.delete_attendee(self.meeting_id, person_id),
            )
            return self._executor.execute(command, meeting_id=self.meeting_id, person_id=person_id)

    def update_role(self, person_id: int, role: Union[AttendeeRole, str]) -> MutationResult:
        with self._lock:
            permissions = resolve_permissions(self._status_provider())
            if not permissions.can_edit_attendees:
                return self._skip("update_role", person_id, permissions.restriction_reason)
            new_role = _coerce(AttendeeRole, role, "role_in_meeting")
            if self._index_of(person_id) is None:
                return self._skip("update_role", person_id, NOT_ATTENDING)

            command = RosterCommand(
                name="update_role",
                apply=lambda roster: self._replace(roster, person_id, role_in_meeting=new_role),
                remote=lambda: self._store.update_attendee(
                    self.meeting_id, person_id, {"role_in_meeting": new_role.value}
                ),
            )
            return self._executor.execute(command, meeting_id=self.meeting_id, person_id=person_id)

    def update_attendance_status(
        self, person_id: int, attendance_status: Union[AttendanceStatus, str]
    ) -> MutationResult:
        """Change attendance.

        Before a meeting only invited/accepted/declined are accepted; while
        it runs only present/absent.

        Raises:
            ValidationError: If the value does not suit the meeting's phase.
        """
        with self._lock:
            permissions = resolve_permissions(self._status_provider())
            value = self._check_attendance(permissions, attendance_status)
            if value is None:
                return self._skip("update_attendance_status", person_id, permissions.restriction_reason)
            if self._index_of(person_id) is None:
                return self._skip("update_attendance_status", person_id, NOT_ATTENDING)

            command = RosterCommand(
                name="update_attendance_status",
                apply=lambda roster: self._replace(roster, person_id, attendance_status=value),
                remote=lambda: self._store.update_attendee(
                    self.meeting_id, person_id, {"attendance_status": value.value}
                ),
            )
            return self._executor.execute(command, meeting_id=self.meeting_id, person_id=person_id)

    def update_attendee(
        self,
        person_id: int,
        role: Optional[Union[AttendeeRole, str]] = None,
        attendance_status: Optional[Union[AttendanceStatus, str]] = None,
    ) -> MutationResult:
        """Change role and/or attendance. Both values are checked before either is written.

        Raises:
            ValidationError: If neither value is given or either is invalid.
        """
        if role is None and attendance_status is None:
            raise ValidationError("role_in_meeting or attendance_status is required")
        with self._lock:
            if role is not None:
                _coerce(AttendeeRole, role, "role_in_meeting")
            if attendance_status is not None:
                self._check_attendance(resolve_permissions(self._status_provider()), attendance_status)

            result = None
            if role is not None:
                result = self.update_role(person_id, role)
            if attendance_status is not None and (result is None or result.success):
                result = self.update_attendance_status(person_id, attendance_status)
            return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_attendance(
        permissions: PermissionSet, attendance_status: Union[AttendanceStatus, str]
    ) -> Optional[AttendanceStatus]:
        """The coerced value, or None when this stage allows no attendance changes."""
        if permissions.can_track_attendance:
            allowed = LIVE_ATTENDANCE
        elif permissions.can_edit_attendees:
            allowed = PRE_MEETING_ATTENDANCE
        else:
            return None

        value = _coerce(AttendanceStatus, attendance_status, "attendance_status")
        if value not in allowed:
            raise ValidationError(
                f"Attendance status '{value.value}' is not valid at this stage of the meeting",
                context={
                    "attendance_status": value.value,
                    "allowed": sorted(status.value for status in allowed),
                },
            )
        return value

    def _index_of(self, person_id: int) -> Optional[int]:
        for index, attendee in enumerate(self._attendees):
            if attendee.person_id == person_id:
                return index
        return None

    @staticmethod
    def _replace(roster: List[Attendee], person_id: int, **changes) -> List[Attendee]:
        return [
            attendee.model_copy(update=changes) if attendee.person_id == person_id else attendee
            for attendee in roster
        ]

    def _set_attendees(self, attendees: List[Attendee]) -> None:
        self._attendees = attendees
        if self._on_change is not None:
            self._on_change([attendee.model_copy() for attendee in attendees])

    def _persisted(self) -> None:
        if self._on_persisted is not None:
            self._on_persisted(self.meeting_id)

    def _skip(self, operation: str, person_id: int, reason: Optional[str]) -> MutationResult:
        logger.info(f"{operation}_skipped", meeting_id=self.meeting_id, person_id=person_id, reason=reason)
        return MutationResult.skipped(reason)
