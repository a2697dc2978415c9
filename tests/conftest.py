"""
Pytest configuration.

Adds the project root to the Python path so tests import `lead_pipeline`
without an install, and swaps the Supabase client for the in-memory fake in
every test so nothing reaches a real database.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path so tests can import lead_pipeline.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from lead_pipeline.config import Settings  # noqa: E402
from lead_pipeline.domain.lead import Lead, LeadStatus  # noqa: E402
from lead_pipeline.repositories import lead_repository  # noqa: E402
from lead_pipeline.repositories.client import reset_supabase, set_supabase  # noqa: E402
from support.fake_supabase import FakeSupabase  # noqa: E402

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fake_db():
    client = FakeSupabase()
    set_supabase(client)
    yield client
    reset_supabase()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url=None,
        supabase_key=None,
        error_report_limit=10,
        progress_interval=2,
        synthetic_id_attempts=10,
    )


@pytest.fixture
def make_lead(fake_db):
    """
    Insert a lead into the fake store and return it.

    Leads get increasing created_at values in creation order unless one is
    given, so "oldest first" ordering is deterministic.
    """

    counter = {"n": 0}

    def _make(
        *,
        mbi: str = "1EG4TE5MK73",
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        status: LeadStatus = LeadStatus.SUBMITTED,
        lead_id: UUID | None = None,
        created_at: datetime | None = None,
        **fields,
    ) -> Lead:
        counter["n"] += 1
        created = created_at or BASE_TIME + timedelta(minutes=counter["n"])
        lead = Lead(
            lead_id=lead_id or uuid4(),
            mbi=mbi,
            first_name=first_name,
            last_name=last_name,
            status=status,
            created_at=created,
            updated_at=created,
            **fields,
        )
        return lead_repository.insert_lead(lead)

    return _make
