"""
Supabase client factory and query execution helper.

All Supabase adapters share one client and run their PostgREST queries
through ``execute_query`` so transport and API failures surface uniformly
as ExternalServiceError.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from shared_utils.constants import LogScope
from shared_utils.error_handler import ConfigurationError, ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

SERVICE_NAME = "Supabase"


def create_supabase_client(url: Optional[str], key: Optional[str]) -> Client:
    """Create a Supabase client.

    Args:
        url: Project URL (SUPABASE_URL).
        key: Service or anon key (SUPABASE_KEY).

    Returns:
        Connected supabase Client.

    Raises:
        ConfigurationError: If URL or key is missing.
        ExternalServiceError: If the client cannot be created.
    """
    if not url or not key:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY are required for the supabase backend")
    try:
        client = create_client(url, key)
    except Exception as exc:
        logger.error("supabase_client_init_failed", url=url, error=str(exc))
        raise ExternalServiceError(SERVICE_NAME, f"Failed to create client: {exc}") from exc

    logger.info("supabase_client_initialized", url=url)
    return client


def execute_query(query: Any, operation: str, **context: Any) -> Any:
    """Execute a PostgREST query builder, wrapping failures.

    Args:
        query: Query builder (``client.table(...).select(...)...``).
        operation: snake_case name used in log events and error context.
        **context: Extra identifiers for logs (meeting_id, person_id, ...).

    Returns:
        The query response (``.data`` holds the rows).

    Raises:
        ExternalServiceError: On API or transport failure.
    """
    try:
        return query.execute()
    except (APIError, httpx.HTTPError) as exc:
        logger.error(f"supabase_{operation}_failed", error=str(exc), **context)
        raise ExternalServiceError(
            SERVICE_NAME, f"{operation} failed: {exc}", context={"operation": operation, **context}
        ) from exc
