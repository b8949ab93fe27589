"""
Constants management.
Centralized configuration for all magic values, table names, and defaults.
"""

from enum import Enum
from typing import Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    # Short aliases (config accepts dev|stage|prod)
    DEV = "dev"
    STAGE = "stage"
    PROD = "prod"


class StoreBackend(str, Enum):
    """Supported remote store backends."""
    SUPABASE = "supabase"
    MEMORY = "memory"


# Default values
class Defaults:
    """Defaults for timing, caching and logging."""
    FIELD_DEBOUNCE_SECONDS: Final[float] = 0.5  # single response / talking point
    TEXT_DEBOUNCE_SECONDS: Final[float] = 1.0  # long free-text fields
    NOTES_AUTOSAVE_SECONDS: Final[float] = 30.0  # whole notes document
    MEETING_CACHE_TTL_SECONDS: Final[float] = 120.0
    LOG_LEVEL: Final[str] = "INFO"
    MAX_SECTION_MINUTES: Final[int] = 180
    MAX_TOTAL_MINUTES: Final[int] = 240


# Remote store tables
class Tables:
    """Table names in the hosted relational store."""
    MEETINGS: Final[str] = "meetings"
    MEETING_ATTENDEES: Final[str] = "meeting_attendees"
    MEETING_TYPES: Final[str] = "meeting_types"
    PHASES: Final[str] = "phases"
    INITIATIVES: Final[str] = "initiatives"
    PEOPLE: Final[str] = "people"


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    ADAPTER = "adapter"
    PERMISSIONS = "permissions"
    TRANSITIONS = "transitions"
    NOTES = "notes"
    PERSISTENCE = "persistence"
    ROSTER = "roster"
    LOADER = "loader"
    MEETINGS = "meetings"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    MEETINGS = "/api/meetings"
    MEETING = "/api/meetings/{meeting_id}"
    TEMPLATE = "/api/meetings/{meeting_id}/template"
    PERMISSIONS = "/api/meetings/{meeting_id}/permissions"
    TRANSITION = "/api/meetings/{meeting_id}/transitions/{target}"
    STATUS = "/api/meetings/{meeting_id}/status"
    QUESTION_RESPONSE = "/api/meetings/{meeting_id}/notes/sections/{section_index}/questions"
    TALKING_POINT_NOTES = "/api/meetings/{meeting_id}/notes/sections/{section_index}/talking-points"
    SECTION_NOTES = "/api/meetings/{meeting_id}/notes/sections/{section_index}/notes"
    SECTION_NOTE = "/api/meetings/{meeting_id}/notes/sections/{section_index}/notes/{note_id}"
    NOTES_FIELD = "/api/meetings/{meeting_id}/notes/fields/{field}"
    NOTES_SAVE = "/api/meetings/{meeting_id}/notes/save"
    NOTES_EXPORT = "/api/meetings/{meeting_id}/notes/export"
    ATTENDEES = "/api/meetings/{meeting_id}/attendees"
    ATTENDEE = "/api/meetings/{meeting_id}/attendees/{person_id}"
    SESSION = "/api/meetings/{meeting_id}/session"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
