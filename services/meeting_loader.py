"""
Meeting aggregate loader with a short-lived per-meeting cache.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from domain.agenda import resolve_template
from domain.models import MeetingAggregate, to_iso, utc_now
from ports.attendee_store import AttendeeStorePort
from ports.meeting_store import MeetingStorePort
from ports.reference_store import ReferenceStorePort
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import NotFoundError
from shared_utils.logging_utils import LogLevel, get_scoped_logger, log_execution


logger = get_scoped_logger(LogScope.LOADER)


@dataclass
class CacheEntry:
    """Cached aggregate with the monotonic time it was stored."""
    value: MeetingAggregate
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class MeetingAggregateLoader:
    """Composes a meeting with its type, phase, initiative, template and roster.

    Results are cached per meeting id for ``ttl_seconds``. Anything that
    writes to a meeting calls ``invalidate`` afterwards so the next load
    sees the write.
    """

    def __init__(
        self,
        meeting_store: MeetingStorePort,
        attendee_store: AttendeeStorePort,
        reference_store: ReferenceStorePort,
        ttl_seconds: float = Defaults.MEETING_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._meetings = meeting_store
        self._attendees = attendee_store
        self._references = reference_store
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[int, CacheEntry] = {}

    def load(self, meeting_id: int, force: bool = False) -> MeetingAggregate:
        """Return the aggregate for ``meeting_id``, from cache when fresh.

        Raises:
            NotFoundError: If the meeting does not exist.
            ExternalServiceError: If the store is unreachable.
        """
        now = self._clock()
        if not force:
            with self._lock:
                entry = self._cache.get(meeting_id)
                if entry is not None and not entry.is_expired(now):
                    logger.debug("meeting_cache_hit", meeting_id=meeting_id)
                    return entry.value.model_copy(deep=True)

        aggregate = self._fetch(meeting_id)
        with self._lock:
            self._cache[meeting_id] = CacheEntry(value=aggregate, created_at=self._clock(), ttl=self._ttl)
        return aggregate.model_copy(deep=True)

    def refresh(self, meeting_id: int) -> MeetingAggregate:
        self.invalidate(meeting_id)
        return self.load(meeting_id)

    def invalidate(self, meeting_id: int) -> None:
        with self._lock:
            dropped = self._cache.pop(meeting_id, None) is not None
        logger.debug("meeting_cache_invalidated", meeting_id=meeting_id, dropped=dropped)

    def invalidate_all(self) -> None:
        with self._lock:
            self._cache.clear()

    def is_cached(self, meeting_id: int) -> bool:
        with self._lock:
            entry = self._cache.get(meeting_id)
            return entry is not None and not entry.is_expired(self._clock())

    @log_execution(scope=LogScope.LOADER, level=LogLevel.DEBUG.value)
    def _fetch(self, meeting_id: int) -> MeetingAggregate:
        meeting = self._meetings.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)

        meeting_type = (
            self._references.get_meeting_type(meeting.meeting_type_id)
            if meeting.meeting_type_id is not None else None
        )
        phase = self._references.get_phase(meeting.phase_id) if meeting.phase_id is not None else None
        initiative = (
            self._references.get_initiative(meeting.initiative_id)
            if meeting.initiative_id is not None else None
        )
        attendees = self._attendees.list_attendees(meeting_id)

        logger.info(
            "meeting_aggregate_loaded",
            meeting_id=meeting_id,
            status=meeting.status.value,
            attendee_count=len(attendees),
        )
        return MeetingAggregate(
            meeting=meeting,
            meeting_type=meeting_type,
            phase=phase,
            initiative=initiative,
            template=resolve_template(meeting, meeting_type),
            attendees=attendees,
            loaded_at=to_iso(utc_now()),
        )
