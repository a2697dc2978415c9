"""
Typed failures raised by the lead pipeline.

"No match found" and "already assigned" are ordinary results and never appear
here. Only conditions the caller cannot branch on as data are modelled as
exceptions.
"""

from __future__ import annotations


class LeadPipelineError(Exception):
    """Base class for every failure surfaced by the pipeline."""


class ValidationError(LeadPipelineError):
    """Disallowed transition, malformed identifier or missing mandatory field."""


class ConflictError(LeadPipelineError):
    """Unique identifier collision or a concurrent modification was detected."""


class NotFoundError(LeadPipelineError):
    """Unknown lead or alert id."""


class StorageError(LeadPipelineError):
    """
    The store rejected a request for a non-retryable reason.

    The message is safe to show to a user; storage detail is logged, not
    embedded here.
    """


class TransientStorageError(StorageError):
    """Timeout or connection failure. The operation may be retried."""


__all__ = [
    "LeadPipelineError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "StorageError",
    "TransientStorageError",
]
