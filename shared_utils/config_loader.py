from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator, ConfigDict
from functools import lru_cache
from typing import Optional

from shared_utils.constants import Defaults, LogScope, StoreBackend
from shared_utils.error_handler import ConfigurationError
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)

_ENVIRONMENT_ALIASES = {
    "dev": "development",
    "stage": "staging",
    "prod": "production",
}


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2).env file > 3) Class defaults

    Every field has a working default so the service boots against the
    in-memory store with no environment at all.
    """
    # Application metadata
    app_name: str = "Meeting Lifecycle Service"  # Configurable via APP_NAME env var
    app_version: str = "1.0.0"
    app_description: str = "Meeting lifecycle, attendee roster and structured notes API"

    # API Base URL Configuration
    api_host: str = "localhost"  # Host for API (localhost, 0.0.0.0, or domain)
    api_port: int = 8000  # Port for API service
    api_protocol: str = "http"  # "http" or "https"

    # Remote store
    store_backend: Optional[str] = None  # "supabase" or "memory"; inferred when unset
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Debounce tiers (seconds)
    field_debounce_seconds: float = Defaults.FIELD_DEBOUNCE_SECONDS
    text_debounce_seconds: float = Defaults.TEXT_DEBOUNCE_SECONDS
    notes_autosave_seconds: float = Defaults.NOTES_AUTOSAVE_SECONDS

    # Meeting aggregate cache
    meeting_cache_ttl_seconds: float = Defaults.MEETING_CACHE_TTL_SECONDS

    # Environment
    environment: str = "development"
    log_level: str = Defaults.LOG_LEVEL

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized, normalising short aliases."""
        v = _ENVIRONMENT_ALIASES.get(v.lower(), v.lower())
        valid_envs = {"development", "staging", "production"}
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}, got {v}")
        return v

    @field_validator('store_backend')
    @classmethod
    def validate_store_backend(cls, v: Optional[str]) -> Optional[str]:
        """Validate store backend is supported."""
        if v is None or v == "":
            return None
        valid_backends = {b.value for b in StoreBackend}
        if v.lower() not in valid_backends:
            raise ValueError(f"store_backend must be one of {valid_backends}, got {v}")
        return v.lower()

    @field_validator(
        'field_debounce_seconds',
        'text_debounce_seconds',
        'notes_autosave_seconds',
        'meeting_cache_ttl_seconds',
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Timer and cache durations must be positive."""
        if v <= 0:
            raise ValueError(f"duration must be > 0, got {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got {v}")
        return v.upper()

    @model_validator(mode="after")
    def infer_store_backend(self) -> "Settings":
        if self.store_backend is None:
            self.store_backend = (
                StoreBackend.SUPABASE.value if self.supabase_url else StoreBackend.MEMORY.value
            )
        return self

    def require_supabase_credentials(self) -> None:
        """Raise when the Supabase backend is selected without credentials.

        Raises:
            ConfigurationError: If URL or key is missing
        """
        if self.store_backend != StoreBackend.SUPABASE.value:
            return
        missing = [
            name for name, value in (("SUPABASE_URL", self.supabase_url), ("SUPABASE_KEY", self.supabase_key))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Supabase backend selected but credentials are missing",
                context={"missing": missing},
            )

    def get_api_base_url(self) -> str:
        """Get full API base URL constructed from host, port and protocol.

        Returns:
            Full API base URL (e.g., "http://localhost:8000")
        """
        # Don't add port if it's standard (80 for http, 443 for https)
        port_str = "" if (
            (self.api_protocol == "http" and self.api_port == 80) or
            (self.api_protocol == "https" and self.api_port == 443)
        ) else f":{self.api_port}"

        return f"{self.api_protocol}://{self.api_host}{port_str}"


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If the Supabase backend is selected without credentials
        ValueError: If settings are invalid
    """
    settings = Settings()
    settings.require_supabase_credentials()

    # Log loaded configuration (credentials never logged)
    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        store_backend=settings.store_backend,
        supabase_url=settings.supabase_url,
        notes_autosave_seconds=settings.notes_autosave_seconds,
        meeting_cache_ttl_seconds=settings.meeting_cache_ttl_seconds,
    )

    return settings
