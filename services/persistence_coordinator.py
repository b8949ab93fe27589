"""
Debounced persistence for a mounted meeting's notes.

Two tiers:

* FieldDebouncer coalesces rapid edits to a single field (a response, a
  talking point, a free-text box) into one local apply.
* DebouncedPersistenceCoordinator coalesces local document changes into one
  partial update of the meeting row, either when its autosave timer fires
  or when the user asks to save now.

Each edit bumps a sequence number. A flush records the number it captured
at dispatch and only clears dirtiness up to that number, so an edit that
arrives while a write is in flight is never reported as saved.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from domain.models import to_iso, utc_now
from ports.meeting_store import MeetingStorePort
from shared_utils.constants import LogScope
from shared_utils.error_handler import AppException, ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PERSISTENCE)

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _start_timer(timer_factory: TimerFactory, delay: float, callback: Callable[[], None]) -> Any:
    timer = timer_factory(delay, callback)
    timer.daemon = True  # never keep the process alive for a pending save
    timer.start()
    return timer


class PersistenceState(BaseModel):
    """What the save indicator shows."""

    dirty: bool = False
    in_flight: bool = False
    pending: bool = False
    last_error: Optional[str] = None
    last_saved_at: Optional[str] = None


class DebouncedPersistenceCoordinator:
    """Owns the autosave timer and the single writer for one meeting row."""

    def __init__(
        self,
        meeting_id: int,
        store: MeetingStorePort,
        snapshot: Callable[[], Dict[str, Any]],
        delay_seconds: float,
        timer_factory: TimerFactory = threading.Timer,
        on_persisted: Optional[Callable[[int], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.meeting_id = meeting_id
        self._store = store
        self._snapshot = snapshot
        self._delay = delay_seconds
        self._timer_factory = timer_factory
        self._on_persisted = on_persisted
        self._clock = clock

        self._lock = threading.Lock()  # guards the fields below
        self._write_lock = threading.Lock()  # one write at a time
        self._timer: Any = None
        self._version = 0
        self._flushed_version = 0
        self._in_flight = False
        self._last_error: Optional[str] = None
        self._last_saved_at: Optional[str] = None
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._version != self._flushed_version

    @property
    def state(self) -> PersistenceState:
        with self._lock:
            return PersistenceState(
                dirty=self._version != self._flushed_version,
                in_flight=self._in_flight,
                pending=self._timer is not None,
                last_error=self._last_error,
                last_saved_at=self._last_saved_at,
            )

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def mark_dirty(self) -> None:
        """Record an edit and restart the autosave timer."""
        with self._lock:
            self._version += 1
            if self._closed:
                logger.warning("edit_after_close", meeting_id=self.meeting_id)
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = _start_timer(self._timer_factory, self._delay, self._on_timer)

    def record_error(self, message: str) -> None:
        """Surface a failure that happened outside a write (e.g. a dropped edit)."""
        with self._lock:
            self._last_error = message

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self._flush("autosave")

    def _cancel_timer(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def flush_now(self) -> bool:
        """Save Now: cancel the timer and write immediately if dirty.

        Never raises. Returns False when the write failed; the coordinator
        stays dirty and ``state.last_error`` holds the reason.
        """
        self._cancel_timer()
        return self._flush("manual")

    def write_through(self, fields: Dict[str, Any]) -> None:
        """Write ``fields`` immediately, merged with any unsaved document state.

        Raises:
            ExternalServiceError: If the write fails.
        """
        with self._write_lock:
            with self._lock:
                version = self._version
                dirty = version != self._flushed_version
                self._in_flight = True

            try:
                payload = {**self._snapshot(), **fields} if dirty else dict(fields)
                self._store.update_meeting(self.meeting_id, payload)
            except Exception as exc:
                with self._lock:
                    self._in_flight = False
                    self._last_error = str(exc)
                logger.warning(
                    "write_through_failed",
                    meeting_id=self.meeting_id,
                    fields=sorted(fields),
                    error=str(exc),
                )
                if isinstance(exc, AppException):
                    raise
                raise ExternalServiceError("MeetingStore", str(exc)) from exc

            with self._lock:
                self._in_flight = False
                if dirty:
                    self._flushed_version = max(self._flushed_version, version)
                    self._last_saved_at = to_iso(self._clock())
                    self._last_error = None
                    if self._version == self._flushed_version and self._timer is not None:
                        self._timer.cancel()
                        self._timer = None

        logger.info("write_through_completed", meeting_id=self.meeting_id, fields=sorted(fields), merged=dirty)
        self._notify_persisted()

    def close(self, flush: bool = True) -> bool:
        """Teardown: stop the timer and, by default, make one final flush."""
        with self._lock:
            self._closed = True
        self._cancel_timer()
        if flush:
            return self._flush("teardown")
        return True

    def _flush(self, reason: str) -> bool:
        with self._write_lock:
            with self._lock:
                if self._version == self._flushed_version:
                    return True
                version = self._version
                self._in_flight = True

            try:
                fields = self._snapshot()
                self._store.update_meeting(self.meeting_id, fields)
            except Exception as exc:
                with self._lock:
                    self._in_flight = False
                    self._last_error = str(exc)
                logger.warning(
                    "notes_flush_failed",
                    meeting_id=self.meeting_id,
                    reason=reason,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                return False

            with self._lock:
                self._in_flight = False
                self._flushed_version = max(self._flushed_version, version)
                self._last_error = None
                self._last_saved_at = to_iso(self._clock())
                still_dirty = self._version != self._flushed_version

        logger.info(
            "notes_flushed",
            meeting_id=self.meeting_id,
            reason=reason,
            version=version,
            still_dirty=still_dirty,
        )
        self._notify_persisted()
        return True

    def _notify_persisted(self) -> None:
        if self._on_persisted is not None:
            self._on_persisted(self.meeting_id)


class FieldDebouncer:
    """Per-key debounce of local applies.

    Only the most recent apply for a key survives; it runs when that key's
    timer fires or when ``flush_all`` is called. An apply that raises is
    logged and handed to ``on_error``; it never stops the other keys.
    """

    def __init__(
        self,
        delay_seconds: float,
        timer_factory: TimerFactory = threading.Timer,
        on_error: Optional[Callable[[str, Exception], None]] = None,
    ) -> None:
        self._delay = delay_seconds
        self._timer_factory = timer_factory
        self._on_error = on_error
        self._lock = threading.Lock()
        self._pending: Dict[str, Tuple[Callable[[], None], Any, object]] = {}

    @property
    def pending_keys(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def submit(self, key: str, apply: Callable[[], None]) -> None:
        token = object()
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous[1].cancel()
            timer = _start_timer(self._timer_factory, self._delay, lambda: self._fire(key, token))
            self._pending[key] = (apply, timer, token)

    def flush_all(self) -> int:
        """Run every pending apply now, in submission order. Returns how many ran."""
        with self._lock:
            entries = list(self._pending.items())
            self._pending.clear()
        for _, (_, timer, _) in entries:
            timer.cancel()
        for key, (apply, _, _) in entries:
            self._run(key, apply)
        return len(entries)

    def cancel_all(self) -> int:
        """Drop every pending apply without running it."""
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for _, timer, _ in entries:
            timer.cancel()
        return len(entries)

    def _fire(self, key: str, token: object) -> None:
        with self._lock:
            entry = self._pending.get(key)
            # a newer submit or a flush already replaced this one
            if entry is None or entry[2] is not token:
                return
            del self._pending[key]
        self._run(key, entry[0])

    def _run(self, key: str, apply: Callable[[], None]) -> None:
        try:
            apply()
        except Exception as exc:
            # may run on a timer thread, so the failure is reported, not raised
            logger.error("field_apply_failed", key=key, error_type=type(exc).__name__, error=str(exc))
            if self._on_error is not None:
                self._on_error(key, exc)
