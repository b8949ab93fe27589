"""
Permission matrix derived from a meeting's lifecycle status.

Every capability the meeting view gates on is a pure function of status.
Callers consult the resolved PermissionSet before mutating anything.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Union

from domain.models import MeetingStatus, PermissionSet
from shared_utils.constants import LogScope
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PERMISSIONS)

UNKNOWN_STATUS_REASON = "Unknown status - all actions disabled"

_PERMISSION_MATRIX: Dict[MeetingStatus, PermissionSet] = {
    MeetingStatus.NOT_SCHEDULED: PermissionSet(
        can_edit_agenda_structure=True,
        can_edit_agenda_content=True,
        can_edit_meeting_details=True,
        can_edit_meeting_type=True,
        can_edit_attendees=True,
        can_edit_schedule=True,
        can_change_status=True,
        can_delete=True,
    ),
    MeetingStatus.SCHEDULED: PermissionSet(
        can_edit_agenda_content=True,
        can_edit_meeting_details=True,
        can_edit_meeting_type=True,
        can_edit_attendees=True,
        can_edit_schedule=True,
        can_change_status=True,
        can_start_meeting=True,
        can_cancel_meeting=True,
        restriction_reason="Meeting is scheduled - structural changes may affect attendees",
    ),
    MeetingStatus.IN_PROGRESS: PermissionSet(
        can_track_attendance=True,
        can_take_notes=True,
        can_edit_notes=True,
        can_change_status=True,
        can_complete_meeting=True,
        can_pause_meeting=True,
        restriction_reason="Meeting is in progress - focus on taking notes",
    ),
    MeetingStatus.COMPLETED: PermissionSet(
        can_edit_notes=True,
        restriction_reason="Meeting is completed - only notes can be edited",
    ),
    MeetingStatus.CANCELLED: PermissionSet(
        can_change_status=True,
        restriction_reason="Meeting is cancelled - read-only historical record",
    ),
}

_UNKNOWN = PermissionSet(restriction_reason=UNKNOWN_STATUS_REASON)


def coerce_status(status: Union[MeetingStatus, str]) -> MeetingStatus | None:
    """Return the MeetingStatus for ``status``, or None when unrecognised."""
    if isinstance(status, MeetingStatus):
        return status
    try:
        return MeetingStatus(status)
    except ValueError:
        return None


@lru_cache(maxsize=None)
def resolve_permissions(status: Union[MeetingStatus, str]) -> PermissionSet:
    """Resolve the capability set for a meeting status.

    Never raises: an unrecognised status string yields an all-false set
    with an explanatory restriction reason.

    Args:
        status: MeetingStatus or its raw stored value.

    Returns:
        Frozen PermissionSet.
    """
    resolved = coerce_status(status)
    if resolved is None:
        logger.warning("unknown_meeting_status", status=str(status))
        return _UNKNOWN
    return _PERMISSION_MATRIX[resolved]
