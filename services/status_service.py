"""
Status transition engine.

Requesting a transition validates it and returns the confirmation copy;
committing re-validates and writes the new status straight through to the
store. Status writes are never debounced and never optimistic: the caller
only sees the new status once the store has accepted it.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Union

from pydantic import BaseModel

from domain.models import MeetingStatus, STATUS_LABELS
from domain.permissions import coerce_status, resolve_permissions
from domain.transitions import TransitionPrompt, describe_transition, is_legal_transition
from ports.meeting_store import MeetingStorePort
from services.meeting_loader import MeetingAggregateLoader
from shared_utils.constants import ErrorCode, LogScope
from shared_utils.error_handler import AppException, IllegalTransitionError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.TRANSITIONS)

StatusLike = Union[MeetingStatus, str]


class StatusWriter(Protocol):
    """Anything with an immediate write path (the notes coordinator)."""

    def write_through(self, fields: Dict[str, Any]) -> None:
        ...


class TransitionResult(BaseModel):
    success: bool
    previous_status: str
    status: str
    error: Optional[str] = None
    error_code: Optional[str] = None


def _value(status: StatusLike) -> str:
    return status.value if isinstance(status, MeetingStatus) else str(status)


class StatusTransitionEngine:
    """Validates and commits meeting status changes."""

    def __init__(self, meeting_store: MeetingStorePort, loader: Optional[MeetingAggregateLoader] = None) -> None:
        self._store = meeting_store
        self._loader = loader

    def validate(self, current: StatusLike, target: StatusLike) -> MeetingStatus:
        """Check a transition without side effects.

        Returns:
            The target as a MeetingStatus.

        Raises:
            IllegalTransitionError: If the pair is not in the lifecycle graph,
                either status is unknown, or the current status forbids
                status changes.
        """
        current_status, target_status = coerce_status(current), coerce_status(target)
        if current_status is None or target_status is None:
            raise IllegalTransitionError(_value(current), _value(target), reason="Unknown meeting status")

        permissions = resolve_permissions(current_status)
        if not permissions.can_change_status:
            raise IllegalTransitionError(
                current_status.value,
                target_status.value,
                reason=f"Status cannot be changed: {permissions.restriction_reason}",
            )

        if not is_legal_transition(current_status, target_status):
            raise IllegalTransitionError(
                current_status.value,
                target_status.value,
                reason=(
                    f"Cannot change meeting status from {STATUS_LABELS[current_status]} "
                    f"to {STATUS_LABELS[target_status]}"
                ),
            )
        return target_status

    def request_transition(self, current: StatusLike, target: StatusLike) -> TransitionPrompt:
        """Confirmation copy for a legal transition. Mutates nothing."""
        self.validate(current, target)
        return describe_transition(current, target)

    def commit_transition(
        self,
        meeting_id: int,
        current: StatusLike,
        target: StatusLike,
        writer: Optional[StatusWriter] = None,
    ) -> TransitionResult:
        """Write the new status synchronously.

        Raises:
            IllegalTransitionError: Before any write, for an illegal pair.

        Returns:
            TransitionResult; on a failed write ``status`` is still the
            previous status.
        """
        target_status = self.validate(current, target)
        previous = _value(current)
        fields = {"status": target_status.value}

        try:
            if writer is not None:
                writer.write_through(fields)
            else:
                self._store.update_meeting(meeting_id, fields)
        except Exception as exc:
            code = exc.error_code if isinstance(exc, AppException) else ErrorCode.EXTERNAL_SERVICE_ERROR.value
            logger.warning(
                "status_change_failed",
                meeting_id=meeting_id,
                from_status=previous,
                to_status=target_status.value,
                error=str(exc),
            )
            return TransitionResult(
                success=False, previous_status=previous, status=previous, error=str(exc), error_code=code
            )

        if self._loader is not None:
            self._loader.invalidate(meeting_id)
        logger.info("status_changed", meeting_id=meeting_id, from_status=previous, to_status=target_status.value)
        return TransitionResult(success=True, previous_status=previous, status=target_status.value)
