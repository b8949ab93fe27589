"""
Dependency injection container for managing application dependencies.
Centralizes store, loader and service creation and lifecycle management.
"""

from typing import Optional

from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope, StoreBackend
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CONFIG)


class DIContainer:
    """Singleton dependency injection container."""

    _instance: Optional['DIContainer'] = None

    _supabase_client: Optional[object] = None
    _memory_database: Optional[object] = None
    _meeting_store: Optional[object] = None
    _attendee_store: Optional[object] = None
    _reference_store: Optional[object] = None
    _meeting_loader: Optional[object] = None
    _transition_engine: Optional[object] = None
    _meeting_service: Optional[object] = None
    _workspace_registry: Optional[object] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Reset container (useful for testing). Open workspaces are closed without flushing."""
        if self._workspace_registry is not None:
            self._workspace_registry.close_all(flush=False)
        self._supabase_client = None
        self._memory_database = None
        self._meeting_store = None
        self._attendee_store = None
        self._reference_store = None
        self._meeting_loader = None
        self._transition_engine = None
        self._meeting_service = None
        self._workspace_registry = None

    # ------------------------------------------------------------------
    # Store adapters
    # ------------------------------------------------------------------

    def _use_supabase(self) -> bool:
        return get_settings().store_backend == StoreBackend.SUPABASE.value

    def get_supabase_client(self):
        """Get or create the shared Supabase client (lazy singleton)."""
        if self._supabase_client is None:
            from adapters.supabase_client import create_supabase_client

            settings = get_settings()
            self._supabase_client = create_supabase_client(settings.supabase_url, settings.supabase_key)
        return self._supabase_client

    def get_memory_database(self):
        """Get or create the InMemoryMeetingDatabase (local dev / tests)."""
        if self._memory_database is None:
            from adapters.in_memory_store import InMemoryMeetingDatabase

            self._memory_database = InMemoryMeetingDatabase()
            logger.info("initialized_in_memory_database")
        return self._memory_database

    def get_meeting_store(self):
        """Get or create the meeting store adapter (lazy singleton)."""
        if self._meeting_store is None:
            if self._use_supabase():
                from adapters.supabase_meeting_store import SupabaseMeetingStoreAdapter
                self._meeting_store = SupabaseMeetingStoreAdapter(self.get_supabase_client())
                logger.info("initialized_supabase_meeting_store")
            else:
                self._meeting_store = self.get_memory_database()
        return self._meeting_store

    def get_attendee_store(self):
        """Get or create the attendee store adapter (lazy singleton)."""
        if self._attendee_store is None:
            if self._use_supabase():
                from adapters.supabase_attendee_store import SupabaseAttendeeStoreAdapter
                self._attendee_store = SupabaseAttendeeStoreAdapter(self.get_supabase_client())
                logger.info("initialized_supabase_attendee_store")
            else:
                self._attendee_store = self.get_memory_database()
        return self._attendee_store

    def get_reference_store(self):
        """Get or create the reference store adapter (lazy singleton)."""
        if self._reference_store is None:
            if self._use_supabase():
                from adapters.supabase_reference_store import SupabaseReferenceStoreAdapter
                self._reference_store = SupabaseReferenceStoreAdapter(self.get_supabase_client())
                logger.info("initialized_supabase_reference_store")
            else:
                self._reference_store = self.get_memory_database()
        return self._reference_store

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def get_meeting_loader(self):
        """Get or create MeetingAggregateLoader (lazy singleton)."""
        if self._meeting_loader is None:
            from services.meeting_loader import MeetingAggregateLoader

            self._meeting_loader = MeetingAggregateLoader(
                meeting_store=self.get_meeting_store(),
                attendee_store=self.get_attendee_store(),
                reference_store=self.get_reference_store(),
                ttl_seconds=get_settings().meeting_cache_ttl_seconds,
            )
            logger.info("initialized_meeting_loader")
        return self._meeting_loader

    def get_transition_engine(self):
        """Get or create StatusTransitionEngine (lazy singleton)."""
        if self._transition_engine is None:
            from services.status_service import StatusTransitionEngine

            self._transition_engine = StatusTransitionEngine(
                meeting_store=self.get_meeting_store(),
                loader=self.get_meeting_loader(),
            )
            logger.info("initialized_transition_engine")
        return self._transition_engine

    def get_meeting_service(self):
        """Get or create MeetingService (lazy singleton)."""
        if self._meeting_service is None:
            from services.meeting_service import MeetingService

            self._meeting_service = MeetingService(
                meeting_store=self.get_meeting_store(),
                attendee_store=self.get_attendee_store(),
                reference_store=self.get_reference_store(),
                loader=self.get_meeting_loader(),
            )
            logger.info("initialized_meeting_service")
        return self._meeting_service

    def get_workspace_registry(self):
        """Get or create WorkspaceRegistry (lazy singleton)."""
        if self._workspace_registry is None:
            from services.meeting_workspace import WorkspaceRegistry

            settings = get_settings()
            self._workspace_registry = WorkspaceRegistry(
                loader=self.get_meeting_loader(),
                meeting_store=self.get_meeting_store(),
                attendee_store=self.get_attendee_store(),
                transition_engine=self.get_transition_engine(),
                autosave_seconds=settings.notes_autosave_seconds,
                field_debounce_seconds=settings.field_debounce_seconds,
                text_debounce_seconds=settings.text_debounce_seconds,
            )
            logger.info("initialized_workspace_registry")
        return self._workspace_registry


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container
