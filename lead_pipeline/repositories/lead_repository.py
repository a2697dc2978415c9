"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead domain entity:
inserts, reads, filtered identity lookups and conditional updates. Lifecycle
rules live in `domain.status`; ownership rules in the assignment service.

Conditional updates are single PostgREST requests whose filters carry the
precondition (e.g. `advocate_id IS NULL`). The database applies filter and
write atomically, so an empty result means the precondition no longer held.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

from lead_pipeline.domain.errors import ConflictError
from lead_pipeline.domain.lead import (
    AdvocateDisposition,
    CollectionsDisposition,
    DoctorApprovalStatus,
    Lead,
    LeadStatus,
    TestType,
)
from lead_pipeline.repositories.client import execute, get_supabase
from lead_pipeline.repositories.serialization import (
    optional_text,
    parse_optional_date,
    parse_optional_datetime,
    parse_utc_datetime,
    to_row_value,
)

# Supabase table name for Lead records.
# Keep this aligned with db/schema.sql.
_LEADS_TABLE: str = "leads"

_IDENTITY_COLUMNS = "lead_id, mbi, created_at"
_OWNER_COLUMNS = ("advocate_id", "collections_agent_id")


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so `ilike` performs a case-insensitive equality."""

    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _optional_enum(enum_type: Any, value: Any) -> Any:
    return enum_type(value) if value not in (None, "") else None


def _lead_to_row(lead: Lead) -> dict[str, Any]:
    """Convert a domain Lead to a Supabase row payload."""

    return {name: to_row_value(name, getattr(lead, name)) for name in Lead.__dataclass_fields__}


def _row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    return Lead(
        # Identity
        lead_id=UUID(str(row["lead_id"])),
        mbi=str(row["mbi"]),
        first_name=str(row["first_name"]),
        last_name=str(row["last_name"]),
        phone=optional_text(row, "phone"),
        date_of_birth=parse_optional_date(row.get("date_of_birth")),

        # Lifecycle
        status=LeadStatus(str(row["status"])),
        created_at=parse_utc_datetime(row["created_at"]),
        updated_at=parse_utc_datetime(row["updated_at"]),

        # Address and source
        street=optional_text(row, "street"),
        city=optional_text(row, "city"),
        state=optional_text(row, "state"),
        zip_code=optional_text(row, "zip_code"),
        vendor_code=optional_text(row, "vendor_code"),
        test_type=_optional_enum(TestType, row.get("test_type")),

        # Advocate phase
        advocate_id=optional_text(row, "advocate_id"),
        advocate_disposition=_optional_enum(AdvocateDisposition, row.get("advocate_disposition")),
        advocate_notes=optional_text(row, "advocate_notes"),
        advocate_reviewed_at=parse_optional_datetime(row.get("advocate_reviewed_at")),

        # Collections phase
        collections_agent_id=optional_text(row, "collections_agent_id"),
        collections_disposition=_optional_enum(
            CollectionsDisposition, row.get("collections_disposition")
        ),
        collections_notes=optional_text(row, "collections_notes"),
        contact_attempts=int(row.get("contact_attempts") or 0),
        last_contact_attempt_at=parse_optional_datetime(row.get("last_contact_attempt_at")),
        next_callback_at=parse_optional_datetime(row.get("next_callback_at")),

        # Fulfillment
        tracking_number=optional_text(row, "tracking_number"),
        kit_returned_at=parse_optional_datetime(row.get("kit_returned_at")),
        doctor_approval_status=_optional_enum(
            DoctorApprovalStatus, row.get("doctor_approval_status")
        ),
        doctor_approval_at=parse_optional_datetime(row.get("doctor_approval_at")),

        # Integrity flags
        is_duplicate=bool(row.get("is_duplicate", False)),
        has_active_alerts=bool(row.get("has_active_alerts", False)),
    )


def _changes_to_row(changes: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(changes) - set(Lead.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown lead columns: {', '.join(sorted(unknown))}")
    if "lead_id" in changes or "mbi" in changes:
        raise ValueError("lead_id and mbi cannot be changed")
    return {name: to_row_value(name, value) for name, value in changes.items()}


def _ids(rows: Iterable[Mapping[str, Any]], exclude: Optional[UUID]) -> List[UUID]:
    found = [UUID(str(row["lead_id"])) for row in rows]
    return [lead_id for lead_id in found if lead_id != exclude]


def insert_lead(lead: Lead) -> Lead:
    """
    Insert a Lead into Supabase.

    Raises:
    - ConflictError if another lead already holds the same mbi.
    - TransientStorageError / StorageError for storage failures.
    """

    try:
        rows = execute(
            get_supabase().table(_LEADS_TABLE).insert(_lead_to_row(lead)),
            action="insert lead",
        )
    except ConflictError:
        raise ConflictError(f"A lead with plan identifier {lead.mbi} already exists") from None
    return _row_to_lead(rows[0]) if rows else lead


def get_lead_by_id(lead_id: UUID) -> Lead | None:
    """
    Fetch a Lead by ID.

    Returns:
    - Lead if found
    - None if no record exists for the given ID
    """

    rows = execute(
        get_supabase().table(_LEADS_TABLE).select("*").eq("lead_id", str(lead_id)).limit(1),
        action="fetch lead",
    )
    if not rows:
        return None
    return _row_to_lead(rows[0])


def get_leads_by_ids(lead_ids: Sequence[UUID]) -> List[Lead]:
    """Fetch several leads, returned in the order of `lead_ids` (missing ids skipped)."""

    if not lead_ids:
        return []
    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .select("*")
        .in_("lead_id", [str(lead_id) for lead_id in lead_ids]),
        action="fetch leads",
    )
    by_id = {UUID(str(row["lead_id"])): _row_to_lead(row) for row in rows}
    return [by_id[lead_id] for lead_id in lead_ids if lead_id in by_id]


def mbi_exists(mbi: str) -> bool:
    rows = execute(
        get_supabase().table(_LEADS_TABLE).select("lead_id").eq("mbi", mbi).limit(1),
        action="check plan identifier",
    )
    return bool(rows)


def find_lead_ids_by_mbi(mbi: str, *, exclude: Optional[UUID] = None) -> List[UUID]:
    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .select(_IDENTITY_COLUMNS)
        .eq("mbi", mbi)
        .order("created_at"),
        action="match leads by plan identifier",
    )
    return _ids(rows, exclude)


def find_lead_ids_by_name_and_phone(
    first_name: str,
    last_name: str,
    phone: str,
    *,
    exclude: Optional[UUID] = None,
) -> List[UUID]:
    """Case-insensitive first/last name equality plus exact normalized phone."""

    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .select(_IDENTITY_COLUMNS)
        .ilike("first_name", _escape_like(first_name))
        .ilike("last_name", _escape_like(last_name))
        .eq("phone", phone)
        .order("created_at"),
        action="match leads by name and phone",
    )
    return _ids(rows, exclude)


def find_lead_ids_by_phone(phone: str, *, exclude: Optional[UUID] = None) -> List[UUID]:
    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .select(_IDENTITY_COLUMNS)
        .eq("phone", phone)
        .order("created_at"),
        action="match leads by phone",
    )
    return _ids(rows, exclude)


def find_lead_ids_by_tracking_number(
    tracking_number: str, *, exclude: Optional[UUID] = None
) -> List[UUID]:
    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .select(_IDENTITY_COLUMNS)
        .eq("tracking_number", tracking_number)
        .order("created_at"),
        action="match leads by tracking number",
    )
    return _ids(rows, exclude)


def list_lead_identities() -> List[tuple[UUID, str, datetime]]:
    """(lead_id, mbi, created_at) for every lead, oldest first."""

    rows = execute(
        get_supabase().table(_LEADS_TABLE).select(_IDENTITY_COLUMNS).order("created_at"),
        action="list lead identities",
    )
    return [
        (UUID(str(row["lead_id"])), str(row["mbi"]), parse_utc_datetime(row["created_at"]))
        for row in rows
    ]


def update_lead_fields(
    lead_id: UUID,
    changes: Mapping[str, Any],
    *,
    expected_status: Optional[LeadStatus] = None,
    owner_column: Optional[str] = None,
    expected_owner: Optional[str] = None,
    expected_contact_attempts: Optional[int] = None,
) -> Lead | None:
    """
    Update columns on one lead.

    Args:
        lead_id: lead to update
        changes: column -> domain value (lead_id and mbi are rejected)
        expected_status: when given, the write only applies while the stored
            status still equals it (optimistic precondition)
        owner_column: "advocate_id" or "collections_agent_id"; when given, the
            write only applies while that column equals `expected_owner`
            (IS NULL when `expected_owner` is None)
        expected_contact_attempts: when given, the write only applies while
            the stored counter still equals it

    Returns:
        The updated Lead, or None when the lead does not exist or a
        precondition no longer held.
    """

    query = (
        get_supabase()
        .table(_LEADS_TABLE)
        .update(_changes_to_row(changes))
        .eq("lead_id", str(lead_id))
    )
    if expected_status is not None:
        query = query.eq("status", LeadStatus(expected_status).value)
    if owner_column is not None:
        if owner_column not in _OWNER_COLUMNS:
            raise ValueError(f"Not an owner column: {owner_column}")
        if expected_owner is None:
            query = query.is_(owner_column, "null")
        else:
            query = query.eq(owner_column, expected_owner)
    if expected_contact_attempts is not None:
        query = query.eq("contact_attempts", expected_contact_attempts)

    rows = execute(query, action="update lead")
    if not rows:
        return None
    return _row_to_lead(rows[0])


def _claim_owner(
    lead_id: UUID,
    *,
    owner_column: str,
    owner_id: str,
    claimable_statuses: Iterable[LeadStatus],
    changes: Mapping[str, Any],
) -> Lead | None:
    """
    Compare-and-swap ownership: set `owner_column` only while it IS NULL and
    the status is claimable. One request, so concurrent claims cannot both win.
    """

    payload = _changes_to_row({**changes, owner_column: owner_id})
    rows = execute(
        get_supabase()
        .table(_LEADS_TABLE)
        .update(payload)
        .eq("lead_id", str(lead_id))
        .is_(owner_column, "null")
        .in_("status", [LeadStatus(status).value for status in claimable_statuses]),
        action="claim lead",
    )
    if not rows:
        return None
    return _row_to_lead(rows[0])


def claim_advocate(
    lead_id: UUID,
    reviewer_id: str,
    *,
    claimable_statuses: Iterable[LeadStatus],
    reviewed_at: datetime,
) -> Lead | None:
    return _claim_owner(
        lead_id,
        owner_column="advocate_id",
        owner_id=reviewer_id,
        claimable_statuses=claimable_statuses,
        changes={
            "status": LeadStatus.ADVOCATE_REVIEW,
            "advocate_reviewed_at": reviewed_at,
            "updated_at": reviewed_at,
        },
    )


def claim_collections_agent(
    lead_id: UUID,
    agent_id: str,
    *,
    claimable_statuses: Iterable[LeadStatus],
    claimed_at: datetime,
) -> Lead | None:
    return _claim_owner(
        lead_id,
        owner_column="collections_agent_id",
        owner_id=agent_id,
        claimable_statuses=claimable_statuses,
        changes={"status": LeadStatus.COLLECTIONS, "updated_at": claimed_at},
    )


__all__ = [
    "insert_lead",
    "get_lead_by_id",
    "get_leads_by_ids",
    "mbi_exists",
    "find_lead_ids_by_mbi",
    "find_lead_ids_by_name_and_phone",
    "find_lead_ids_by_phone",
    "find_lead_ids_by_tracking_number",
    "list_lead_identities",
    "update_lead_fields",
    "claim_advocate",
    "claim_collections_agent",
]
