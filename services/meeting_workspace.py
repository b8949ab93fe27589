"""
Server-side model of a mounted meeting view.

A workspace owns the notes session and the attendee roster for one
meeting, tracks the confirmed status, and tears both down with a final
flush when closed. The registry keeps at most one workspace per meeting.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from domain.models import (
    AgendaTemplate,
    Attendee,
    Initiative,
    Meeting,
    MeetingAggregate,
    MeetingStatus,
    MeetingType,
    PermissionSet,
    Phase,
)
from domain.permissions import resolve_permissions
from domain.transitions import TransitionPrompt
from ports.attendee_store import AttendeeStorePort
from ports.meeting_store import MeetingStorePort
from services.meeting_loader import MeetingAggregateLoader
from services.notes_service import NotesSession
from services.persistence_coordinator import PersistenceState, TimerFactory
from services.roster_service import AttendeeRosterManager
from services.status_service import StatusTransitionEngine, TransitionResult
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import NotFoundError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.MEETINGS)

# Meeting columns a refresh adopts; notes, status and template are handled separately.
DETAIL_COLUMNS = frozenset({
    "meeting_name",
    "scheduled_date",
    "duration_minutes",
    "location_platform",
    "meeting_objectives",
    "key_messages",
    "meeting_type_id",
    "phase_id",
    "initiative_id",
    "updated_at",
})


class WorkspaceView(BaseModel):
    """Everything the meeting page renders, with local unsaved state applied."""

    meeting: Meeting
    meeting_type: Optional[MeetingType] = None
    phase: Optional[Phase] = None
    initiative: Optional[Initiative] = None
    template: AgendaTemplate
    attendees: List[Attendee]
    permissions: PermissionSet
    persistence: PersistenceState
    pending_edits: List[str] = []


class MeetingWorkspace:
    """One mounted meeting: notes session, roster and confirmed status."""

    def __init__(
        self,
        aggregate: MeetingAggregate,
        meeting_store: MeetingStorePort,
        attendee_store: AttendeeStorePort,
        transition_engine: StatusTransitionEngine,
        loader: Optional[MeetingAggregateLoader] = None,
        autosave_seconds: float = Defaults.NOTES_AUTOSAVE_SECONDS,
        field_debounce_seconds: float = Defaults.FIELD_DEBOUNCE_SECONDS,
        text_debounce_seconds: float = Defaults.TEXT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.meeting_id = aggregate.meeting.meeting_id
        self._aggregate = aggregate
        self._status: MeetingStatus = aggregate.meeting.status
        self._template = aggregate.template
        self._engine = transition_engine
        self._loader = loader
        self._status_lock = threading.Lock()
        self.closed = False

        on_persisted = loader.invalidate if loader is not None else None
        self.notes = NotesSession(
            meeting=aggregate.meeting,
            template=aggregate.template,
            meeting_store=meeting_store,
            status_provider=lambda: self._status,
            autosave_seconds=autosave_seconds,
            field_debounce_seconds=field_debounce_seconds,
            text_debounce_seconds=text_debounce_seconds,
            timer_factory=timer_factory,
            on_persisted=on_persisted,
        )
        self.roster = AttendeeRosterManager(
            meeting_id=self.meeting_id,
            attendees=aggregate.attendees,
            attendee_store=attendee_store,
            status_provider=lambda: self._status,
            on_persisted=on_persisted,
        )

    @property
    def status(self) -> MeetingStatus:
        return self._status

    @property
    def permissions(self) -> PermissionSet:
        return resolve_permissions(self._status)

    @property
    def template(self) -> AgendaTemplate:
        return self._template

    def attach_template(self, template: AgendaTemplate) -> None:
        """Adopt a template saved elsewhere while the view is open."""
        self._template = template
        self.notes.attach_template(template)

    def apply_details(self, updates: Dict[str, Any]) -> None:
        """Mirror a saved details/schedule/type edit into the open view."""
        meeting = self._aggregate.meeting.model_copy(update=updates)
        self._aggregate = self._aggregate.model_copy(update={"meeting": meeting})
        self.notes.apply_meeting_fields(updates)

    def request_transition(self, target: Union[MeetingStatus, str]) -> TransitionPrompt:
        return self._engine.request_transition(self._status, target)

    def commit_transition(self, target: Union[MeetingStatus, str]) -> TransitionResult:
        """Commit a status change; the local status moves only after the write succeeds."""
        with self._status_lock:
            result = self._engine.commit_transition(self.meeting_id, self._status, target, writer=self.notes)
            if result.success:
                self._status = MeetingStatus(result.status)
        return result

    def refresh(self) -> bool:
        """Adopt status, roster and details written by other clients.

        Local notes are kept. Both locks are held across the load so a
        transition or roster write cannot land between the read and the
        adopt. Returns True when the stored status differed.

        Raises:
            NotFoundError: If the meeting was deleted elsewhere.
            ExternalServiceError: If the store is unreachable.
        """
        if self._loader is None:
            return False
        with self._status_lock, self.roster.lock:
            aggregate = self._loader.load(self.meeting_id)
            stored = aggregate.meeting.status
            changed = stored != self._status
            if changed:
                logger.info(
                    "workspace_status_adopted",
                    meeting_id=self.meeting_id,
                    local=self._status.value,
                    stored=stored.value,
                )
                self._status = stored

            details = aggregate.meeting.model_dump(include=set(DETAIL_COLUMNS))
            self._aggregate = aggregate.model_copy(
                update={"meeting": self._aggregate.meeting.model_copy(update={**details, "status": stored})}
            )
            self.notes.apply_meeting_fields(details)
            self.roster.reload(aggregate.attendees)
        return changed

    def view(self) -> WorkspaceView:
        snapshot = self.notes.snapshot()
        meeting = self._aggregate.meeting.model_copy(
            update={
                "status": self._status,
                "template_data": self._template,
                "structured_notes": self.notes.structured_notes,
                **{key: value for key, value in snapshot.items() if key != "structured_notes"},
            }
        )
        return WorkspaceView(
            meeting=meeting,
            meeting_type=self._aggregate.meeting_type,
            phase=self._aggregate.phase,
            initiative=self._aggregate.initiative,
            template=self._template,
            attendees=self.roster.attendees,
            permissions=self.permissions,
            persistence=self.notes.state,
            pending_edits=self.notes.pending_edits,
        )

    def close(self, flush: bool = True) -> bool:
        """Tear down timers; with ``flush`` unsaved notes get one final write."""
        if self.closed:
            return True
        self.closed = True
        return self.notes.close(flush=flush)


class WorkspaceRegistry:
    """Open workspaces keyed by meeting id."""

    def __init__(
        self,
        loader: MeetingAggregateLoader,
        meeting_store: MeetingStorePort,
        attendee_store: AttendeeStorePort,
        transition_engine: StatusTransitionEngine,
        autosave_seconds: float = Defaults.NOTES_AUTOSAVE_SECONDS,
        field_debounce_seconds: float = Defaults.FIELD_DEBOUNCE_SECONDS,
        text_debounce_seconds: float = Defaults.TEXT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._loader = loader
        self._meeting_store = meeting_store
        self._attendee_store = attendee_store
        self._engine = transition_engine
        self._autosave_seconds = autosave_seconds
        self._field_debounce_seconds = field_debounce_seconds
        self._text_debounce_seconds = text_debounce_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._workspaces: Dict[int, MeetingWorkspace] = {}

    def open(self, meeting_id: int) -> MeetingWorkspace:
        """Return the open workspace for a meeting, loading it on first use.

        An already open workspace is refreshed from the loader first, so it
        never serves a status another client has since changed.

        Raises:
            NotFoundError: If the meeting does not exist.
        """
        with self._lock:
            workspace = self._workspaces.get(meeting_id)
            if workspace is not None:
                try:
                    workspace.refresh()
                except NotFoundError:
                    del self._workspaces[meeting_id]
                    workspace.close(flush=False)
                    logger.info("workspace_dropped", meeting_id=meeting_id, reason="meeting deleted")
                    raise
                return workspace

            aggregate = self._loader.load(meeting_id)
            workspace = MeetingWorkspace(
                aggregate=aggregate,
                meeting_store=self._meeting_store,
                attendee_store=self._attendee_store,
                transition_engine=self._engine,
                loader=self._loader,
                autosave_seconds=self._autosave_seconds,
                field_debounce_seconds=self._field_debounce_seconds,
                text_debounce_seconds=self._text_debounce_seconds,
                timer_factory=self._timer_factory,
            )
            self._workspaces[meeting_id] = workspace
            logger.info("workspace_opened", meeting_id=meeting_id, status=aggregate.meeting.status.value)
            return workspace

    def get(self, meeting_id: int) -> Optional[MeetingWorkspace]:
        with self._lock:
            return self._workspaces.get(meeting_id)

    def close(self, meeting_id: int, flush: bool = True) -> Optional[PersistenceState]:
        """Close and forget a workspace. Returns its final state, or None if none was open."""
        with self._lock:
            workspace = self._workspaces.pop(meeting_id, None)
        if workspace is None:
            return None
        workspace.close(flush=flush)
        logger.info("workspace_closed", meeting_id=meeting_id, flushed=flush)
        return workspace.notes.state

    def close_all(self, flush: bool = True) -> None:
        with self._lock:
            workspaces = list(self._workspaces.values())
            self._workspaces.clear()
        for workspace in workspaces:
            workspace.close(flush=flush)

    @property
    def open_meeting_ids(self) -> List[int]:
        with self._lock:
            return list(self._workspaces)
