"""
Tests for `repositories/client.py`: storage failures become typed errors.
"""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from lead_pipeline.domain.errors import ConflictError, StorageError, TransientStorageError
from lead_pipeline.repositories.client import execute, get_supabase, set_supabase


class _Query:
    def __init__(self, *, raises=None, response=None):
        self._raises = raises
        self._response = response

    def execute(self):
        if self._raises is not None:
            raise self._raises
        return self._response


def test_returns_rows():
    query = _Query(response=SimpleNamespace(data=[{"lead_id": "x"}]))
    assert execute(query, action="fetch lead") == [{"lead_id": "x"}]


def test_empty_data_is_empty_list():
    assert execute(_Query(response=SimpleNamespace(data=None)), action="fetch lead") == []


def test_unique_violation_is_conflict():
    error = APIError({"code": "23505", "message": "duplicate key value", "details": None, "hint": None})
    with pytest.raises(ConflictError):
        execute(_Query(raises=error), action="insert lead")


def test_other_api_error_is_storage_error_without_detail():
    error = APIError({"code": "42P01", "message": "relation leads does not exist", "details": None, "hint": None})
    with pytest.raises(StorageError) as exc_info:
        execute(_Query(raises=error), action="fetch lead")
    assert not isinstance(exc_info.value, TransientStorageError)
    assert "relation" not in str(exc_info.value)


@pytest.mark.parametrize(
    "error",
    [httpx.ReadTimeout("timed out"), httpx.ConnectError("connection refused")],
)
def test_transport_failures_are_transient(error):
    with pytest.raises(TransientStorageError):
        execute(_Query(raises=error), action="fetch lead")


def test_error_on_response_object():
    response = SimpleNamespace(data=None, error=SimpleNamespace(code="23505"))
    with pytest.raises(ConflictError):
        execute(_Query(response=response), action="insert alert")


def test_installed_client_is_used(fake_db):
    assert get_supabase() is fake_db
    replacement = object()
    set_supabase(replacement)
    assert get_supabase() is replacement
