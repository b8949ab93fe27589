"""
Tests for services.persistence_coordinator.

Timers come from the FakeTimerFactory fixture, so every autosave and
debounce firing in these tests is explicit.
"""

from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from services.persistence_coordinator import DebouncedPersistenceCoordinator, FieldDebouncer
from shared_utils.error_handler import ExternalServiceError, NotFoundError


class RecordingStore:
    """Meeting store double that records partial updates."""

    def __init__(self) -> None:
        self.updates: List[Dict[str, Any]] = []
        self.fail_with: Exception = None

    def update_meeting(self, meeting_id: int, fields: Dict[str, Any]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.updates.append(dict(fields))


@pytest.fixture()
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture()
def document() -> Dict[str, Any]:
    return {"structured_notes": {"agenda_sections": []}, "meeting_summary": ""}


@pytest.fixture()
def coordinator(store, document, timer_factory, clock) -> DebouncedPersistenceCoordinator:
    return DebouncedPersistenceCoordinator(
        meeting_id=7,
        store=store,
        snapshot=lambda: dict(document),
        delay_seconds=30.0,
        timer_factory=timer_factory,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Autosave
# ---------------------------------------------------------------------------


class TestAutosave:
    def test_edits_coalesce_into_one_write(self, coordinator, store, document, timer_factory) -> None:
        for text in ("a", "ab", "abc"):
            document["meeting_summary"] = text
            coordinator.mark_dirty()

        assert len(timer_factory.active()) == 1
        assert timer_factory.timers[0].cancelled

        timer_factory.fire_all()
        assert store.updates == [{"structured_notes": {"agenda_sections": []}, "meeting_summary": "abc"}]
        assert not coordinator.dirty
        assert coordinator.state.last_saved_at is not None

    def test_timer_is_daemon(self, coordinator, timer_factory) -> None:
        coordinator.mark_dirty()
        assert timer_factory.timers[0].daemon is True
        assert timer_factory.timers[0].interval == 30.0

    def test_clean_coordinator_does_not_write(self, coordinator, store) -> None:
        assert coordinator.flush_now() is True
        assert store.updates == []

    def test_state_while_pending(self, coordinator) -> None:
        coordinator.mark_dirty()
        state = coordinator.state
        assert state.dirty and state.pending and not state.in_flight


# ---------------------------------------------------------------------------
# Save Now and failures
# ---------------------------------------------------------------------------


class TestFlushNow:
    def test_cancels_timer_and_writes(self, coordinator, store, timer_factory) -> None:
        coordinator.mark_dirty()
        assert coordinator.flush_now() is True
        assert timer_factory.active() == []
        assert len(store.updates) == 1
        assert not coordinator.state.pending

    def test_failure_keeps_dirty_and_never_raises(self, coordinator, store) -> None:
        coordinator.mark_dirty()
        store.fail_with = ExternalServiceError("Supabase", "timeout")

        assert coordinator.flush_now() is False
        state = coordinator.state
        assert state.dirty
        assert "timeout" in state.last_error
        assert not state.in_flight

        store.fail_with = None
        assert coordinator.flush_now() is True
        assert coordinator.state.last_error is None
        assert not coordinator.dirty

    def test_edit_during_write_stays_dirty(self, store, document, timer_factory, clock) -> None:
        holder = {}

        def snapshot() -> Dict[str, Any]:
            # an edit lands after the flush captured its version
            holder["coordinator"].mark_dirty()
            return dict(document)

        coordinator = DebouncedPersistenceCoordinator(
            meeting_id=7, store=store, snapshot=snapshot, delay_seconds=30.0,
            timer_factory=timer_factory, clock=clock,
        )
        holder["coordinator"] = coordinator
        coordinator.mark_dirty()

        assert coordinator.flush_now() is True
        assert coordinator.dirty
        assert len(timer_factory.active()) == 1

    def test_on_persisted_called(self, store, document, timer_factory, clock) -> None:
        on_persisted = MagicMock()
        coordinator = DebouncedPersistenceCoordinator(
            meeting_id=7, store=store, snapshot=lambda: dict(document), delay_seconds=30.0,
            timer_factory=timer_factory, on_persisted=on_persisted, clock=clock,
        )
        coordinator.mark_dirty()
        coordinator.flush_now()
        on_persisted.assert_called_once_with(7)


# ---------------------------------------------------------------------------
# Write-through (status changes)
# ---------------------------------------------------------------------------


class TestWriteThrough:
    def test_clean_writes_only_fields(self, coordinator, store) -> None:
        coordinator.write_through({"status": "completed"})
        assert store.updates == [{"status": "completed"}]

    def test_dirty_notes_ride_along(self, coordinator, store, document, timer_factory) -> None:
        document["meeting_summary"] = "unsaved"
        coordinator.mark_dirty()

        coordinator.write_through({"status": "completed"})

        assert store.updates == [{
            "structured_notes": {"agenda_sections": []},
            "meeting_summary": "unsaved",
            "status": "completed",
        }]
        assert not coordinator.dirty
        assert timer_factory.active() == []

    def test_app_errors_propagate(self, coordinator, store) -> None:
        store.fail_with = NotFoundError("Meeting", 7)
        with pytest.raises(NotFoundError):
            coordinator.write_through({"status": "completed"})
        assert "not found" in coordinator.state.last_error

    def test_unexpected_errors_wrapped(self, coordinator, store) -> None:
        coordinator.mark_dirty()
        store.fail_with = ConnectionError("reset by peer")
        with pytest.raises(ExternalServiceError):
            coordinator.write_through({"status": "completed"})
        assert coordinator.dirty


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


class TestClose:
    def test_final_flush(self, coordinator, store, timer_factory) -> None:
        coordinator.mark_dirty()
        assert coordinator.close() is True
        assert len(store.updates) == 1
        assert timer_factory.active() == []

    def test_close_without_flush_drops_pending(self, coordinator, store) -> None:
        coordinator.mark_dirty()
        coordinator.close(flush=False)
        assert store.updates == []

    def test_edit_after_close_starts_no_timer(self, coordinator, timer_factory) -> None:
        coordinator.close()
        coordinator.mark_dirty()
        assert timer_factory.timers == []
        assert coordinator.dirty


# ---------------------------------------------------------------------------
# FieldDebouncer
# ---------------------------------------------------------------------------


class TestFieldDebouncer:
    def test_latest_apply_wins(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)
        applied = []
        debouncer.submit("summary", lambda: applied.append("a"))
        debouncer.submit("summary", lambda: applied.append("ab"))

        assert debouncer.pending_keys == ["summary"]
        timer_factory.fire_all()
        assert applied == ["ab"]
        assert debouncer.pending_keys == []

    def test_keys_are_independent(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)
        applied = []
        debouncer.submit("a", lambda: applied.append("a"))
        debouncer.submit("b", lambda: applied.append("b"))
        timer_factory.active()[0].fire()
        assert applied == ["a"]
        assert debouncer.pending_keys == ["b"]

    def test_flush_all_runs_in_order(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)
        applied = []
        debouncer.submit("a", lambda: applied.append("a"))
        debouncer.submit("b", lambda: applied.append("b"))
        assert debouncer.flush_all() == 2
        assert applied == ["a", "b"]
        assert timer_factory.active() == []

    def test_stale_timer_is_ignored(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)
        applied = []
        debouncer.submit("a", lambda: applied.append("first"))
        stale = timer_factory.timers[0]
        debouncer.submit("a", lambda: applied.append("second"))
        # simulate a timer that fired despite cancel()
        stale.function()
        assert applied == []
        debouncer.flush_all()
        assert applied == ["second"]

    def test_cancel_all(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)
        applied = []
        debouncer.submit("a", lambda: applied.append("a"))
        assert debouncer.cancel_all() == 1
        assert debouncer.flush_all() == 0
        assert applied == []

    def test_failing_apply_is_logged_not_raised(self, timer_factory) -> None:
        debouncer = FieldDebouncer(0.5, timer_factory)

        def boom() -> None:
            raise RuntimeError("bad apply")

        debouncer.submit("a", boom)
        timer_factory.fire_all()
        assert debouncer.pending_keys == []

    def test_failing_apply_reported_to_handler(self, timer_factory) -> None:
        errors = []
        applied = []
        debouncer = FieldDebouncer(0.5, timer_factory, on_error=lambda key, exc: errors.append((key, str(exc))))

        def boom() -> None:
            raise RuntimeError("bad apply")

        debouncer.submit("a", boom)
        debouncer.submit("b", lambda: applied.append("b"))
        assert debouncer.flush_all() == 2
        assert errors == [("a", "bad apply")]
        assert applied == ["b"]

    def test_record_error_shows_in_state(self, coordinator) -> None:
        coordinator.record_error("edit dropped")
        assert coordinator.state.last_error == "edit dropped"
