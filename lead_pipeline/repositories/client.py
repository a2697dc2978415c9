"""
Supabase client initialization.

This module contains *only* the database connection setup plus the single
`execute` helper every repository uses to run a PostgREST query. The helper
translates transport and PostgREST failures into the pipeline's typed errors:

- unique-violation (SQLSTATE 23505)  -> ConflictError
- timeout / connection failure       -> TransientStorageError (retryable)
- any other PostgREST error          -> StorageError (detail logged, not returned)

The client is built lazily on first use from `lead_pipeline.config`, with the
configured per-call timeout applied to the PostgREST client.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

import httpx
from postgrest.exceptions import APIError

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, ClientOptions, create_client  # type: ignore[import-not-found]

from lead_pipeline.config import get_settings
from lead_pipeline.domain.errors import ConflictError, StorageError, TransientStorageError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

_client: Optional[Client] = None
_client_lock = threading.Lock()


def get_supabase() -> Client:
    """Return the shared Supabase client, creating it on first use."""

    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                settings = get_settings()
                url, key = settings.require_credentials()
                _client = create_client(
                    url,
                    key,
                    options=ClientOptions(postgrest_client_timeout=settings.storage_timeout_seconds),
                )
    return _client


def set_supabase(client: Any) -> None:
    """Install an already-configured client (alternate wiring, tests)."""

    global _client
    with _client_lock:
        _client = client


def reset_supabase() -> None:
    set_supabase(None)


def execute(query: Any, *, action: str) -> List[dict]:
    """
    Run a PostgREST query builder and return its rows.

    Args:
        query: a built supabase/postgrest request (anything with `.execute()`)
        action: short description used in error messages, e.g. "fetch lead"

    Raises:
        ConflictError: the write hit a unique constraint
        TransientStorageError: timeout or connection failure
        StorageError: any other storage failure
    """

    try:
        response = query.execute()
    except APIError as exc:
        if str(getattr(exc, "code", "")) == UNIQUE_VIOLATION:
            raise ConflictError(
                f"Failed to {action}: a record with the same unique key already exists"
            ) from None
        logger.error(
            f"Storage error while trying to {action}",
            extra={"action": action, "code": getattr(exc, "code", None), "detail": str(exc)},
            exc_info=True,
        )
        raise StorageError(f"Failed to {action}") from exc
    except httpx.TimeoutException as exc:
        logger.warning(f"Storage timeout while trying to {action}", extra={"action": action})
        raise TransientStorageError(f"Timed out trying to {action}; retry later") from exc
    except httpx.TransportError as exc:
        logger.warning(
            f"Storage connection failure while trying to {action}",
            extra={"action": action, "detail": str(exc)},
        )
        raise TransientStorageError(f"Storage unavailable while trying to {action}; retry later") from exc

    # Older supabase-py versions report failures on the response instead of raising.
    error = getattr(response, "error", None)
    if error:
        if str(getattr(error, "code", "")) == UNIQUE_VIOLATION:
            raise ConflictError(
                f"Failed to {action}: a record with the same unique key already exists"
            )
        logger.error(
            f"Storage error while trying to {action}",
            extra={"action": action, "detail": str(error)},
        )
        raise StorageError(f"Failed to {action}")

    return list(getattr(response, "data", None) or [])


__all__ = ["get_supabase", "set_supabase", "reset_supabase", "execute", "UNIQUE_VIOLATION"]
