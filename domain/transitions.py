"""
Meeting status transition table and confirmation copy.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Tuple, Union

from pydantic import BaseModel, ConfigDict

from domain.models import MeetingStatus
from domain.permissions import coerce_status


class TransitionKind(str, Enum):
    SCHEDULE = "schedule"
    START = "start"
    COMPLETE = "complete"
    PAUSE = "pause"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    GENERIC = "generic"


class TransitionTone(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


class TransitionPrompt(BaseModel):
    """Confirmation shown before a status change is committed."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    consequences: List[str]
    transition_kind: TransitionKind
    tone: TransitionTone
    from_status: str
    to_status: str
    from_label: str
    to_label: str


_S = MeetingStatus

# (title, message, consequences, kind, tone)
_TRANSITION_COPY: Dict[Tuple[MeetingStatus, MeetingStatus], tuple] = {
    (_S.NOT_SCHEDULED, _S.SCHEDULED): (
        "Schedule Meeting",
        "This will mark the meeting as scheduled and notify all attendees.",
        [
            "All attendees will receive calendar invitations",
            "Meeting details will be locked for editing",
            "You can start the meeting when ready",
        ],
        TransitionKind.SCHEDULE,
        TransitionTone.INFO,
    ),
    (_S.SCHEDULED, _S.IN_PROGRESS): (
        "Start Meeting",
        "This will begin the meeting and enable note-taking.",
        [
            "Meeting agenda and details will be locked",
            "Note-taking interface will be activated",
            "Attendance tracking will begin",
        ],
        TransitionKind.START,
        TransitionTone.SUCCESS,
    ),
    (_S.IN_PROGRESS, _S.COMPLETED): (
        "Complete Meeting",
        "This will mark the meeting as completed.",
        [
            "No further notes can be taken",
            "Final attendance will be recorded",
            "Action items can be created from notes",
        ],
        TransitionKind.COMPLETE,
        TransitionTone.INFO,
    ),
    (_S.IN_PROGRESS, _S.SCHEDULED): (
        "Pause Meeting",
        "This will pause the meeting and return it to scheduled status.",
        [
            "Note-taking will be disabled",
            "Meeting can be resumed later",
            "Current notes will be preserved",
        ],
        TransitionKind.PAUSE,
        TransitionTone.WARNING,
    ),
    (_S.SCHEDULED, _S.CANCELLED): (
        "Cancel Meeting",
        "This will cancel the meeting and notify all attendees.",
        [
            "All attendees will be notified of cancellation",
            "Meeting cannot be started",
            "Meeting can be rescheduled later if needed",
        ],
        TransitionKind.CANCEL,
        TransitionTone.DANGER,
    ),
    (_S.CANCELLED, _S.SCHEDULED): (
        "Reschedule Meeting",
        "This will reactivate the meeting and return it to scheduled status.",
        [
            "Meeting will be available to start again",
            "You may want to notify attendees manually",
            "Original meeting details will be restored",
        ],
        TransitionKind.RESCHEDULE,
        TransitionTone.INFO,
    ),
}

LEGAL_TRANSITIONS: FrozenSet[Tuple[MeetingStatus, MeetingStatus]] = frozenset(_TRANSITION_COPY)


def _label(status: Union[MeetingStatus, str]) -> str:
    resolved = coerce_status(status)
    if resolved is not None:
        return resolved.label
    return str(status)


def _value(status: Union[MeetingStatus, str]) -> str:
    return status.value if isinstance(status, MeetingStatus) else str(status)


def is_legal_transition(current: Union[MeetingStatus, str], target: Union[MeetingStatus, str]) -> bool:
    """True only for the six edges of the lifecycle graph."""
    return (coerce_status(current), coerce_status(target)) in LEGAL_TRANSITIONS


def allowed_targets(current: Union[MeetingStatus, str]) -> List[MeetingStatus]:
    """Statuses reachable from ``current`` in one step, in declaration order."""
    resolved = coerce_status(current)
    return [target for source, target in _TRANSITION_COPY if source == resolved]


def describe_transition(
    current: Union[MeetingStatus, str], target: Union[MeetingStatus, str]
) -> TransitionPrompt:
    """Confirmation copy for a status change.

    Pairs outside the table get the generic "Change Status" wording; legality
    is checked separately by the transition engine.
    """
    from_label, to_label = _label(current), _label(target)
    copy = _TRANSITION_COPY.get((coerce_status(current), coerce_status(target)))

    if copy is None:
        return TransitionPrompt(
            title="Change Status",
            message=f"Change meeting status from {from_label} to {to_label}.",
            consequences=["Meeting status will be updated"],
            transition_kind=TransitionKind.GENERIC,
            tone=TransitionTone.INFO,
            from_status=_value(current),
            to_status=_value(target),
            from_label=from_label,
            to_label=to_label,
        )

    title, message, consequences, kind, tone = copy
    return TransitionPrompt(
        title=title,
        message=message,
        consequences=list(consequences),
        transition_kind=kind,
        tone=tone,
        from_status=_value(current),
        to_status=_value(target),
        from_label=from_label,
        to_label=to_label,
    )
