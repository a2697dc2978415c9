"""
Domain: Lead entity.

A Lead is one patient intake tracked through review and kit fulfillment.

Rules implemented here:
- A Lead is uniquely identified by lead_id (UUID) and carries a unique
  11-character plan identifier (mbi).
- Identity fields (mbi, names, phone, date of birth) do not change after
  creation except through reconciliation, and mbi never changes.
- A Lead has at most one advocate owner and one collections owner.
- Leads are never deleted; KIT_COMPLETED and RETURNED are terminal.
- All timestamps are UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from .identifiers import MBI_LENGTH, is_well_formed_mbi
from .time import require_optional_utc_timestamp, require_utc_timestamp


class LeadStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    ADVOCATE_REVIEW = "ADVOCATE_REVIEW"
    QUALIFIED = "QUALIFIED"
    SENT_TO_CONSULT = "SENT_TO_CONSULT"
    APPROVED = "APPROVED"
    READY_TO_SHIP = "READY_TO_SHIP"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COLLECTIONS = "COLLECTIONS"
    KIT_RETURNING = "KIT_RETURNING"
    KIT_COMPLETED = "KIT_COMPLETED"
    RETURNED = "RETURNED"


TERMINAL_STATUSES = frozenset({LeadStatus.KIT_COMPLETED, LeadStatus.RETURNED})


class TestType(str, Enum):
    __test__ = False  # keep pytest from collecting this enum

    IMMUNE = "IMMUNE"
    NEURO = "NEURO"


class AdvocateDisposition(str, Enum):
    DOESNT_QUALIFY = "DOESNT_QUALIFY"
    COMPLIANCE_ISSUE = "COMPLIANCE_ISSUE"
    PATIENT_DECLINED = "PATIENT_DECLINED"
    CALL_BACK = "CALL_BACK"
    CONNECTED_TO_COMPLIANCE = "CONNECTED_TO_COMPLIANCE"
    CALL_DROPPED = "CALL_DROPPED"
    DUPE = "DUPE"


class CollectionsDisposition(str, Enum):
    NO_ANSWER = "NO_ANSWER"
    SCHEDULED_CALLBACK = "SCHEDULED_CALLBACK"
    KIT_COMPLETED = "KIT_COMPLETED"


class DoctorApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain entity for a Lead.

    Immutability:
    - The entity is frozen; every change produces a new instance through
      `with_changes`, and persistence decides what is actually written.
    """

    lead_id: UUID
    mbi: str
    first_name: str
    last_name: str
    status: LeadStatus
    created_at: datetime
    updated_at: datetime

    phone: Optional[str] = None
    date_of_birth: Optional[date] = None

    # Address and source
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    vendor_code: Optional[str] = None

    test_type: Optional[TestType] = None

    # Advocate phase
    advocate_id: Optional[str] = None
    advocate_disposition: Optional[AdvocateDisposition] = None
    advocate_notes: Optional[str] = None
    advocate_reviewed_at: Optional[datetime] = None

    # Collections phase
    collections_agent_id: Optional[str] = None
    collections_disposition: Optional[CollectionsDisposition] = None
    collections_notes: Optional[str] = None
    contact_attempts: int = 0
    last_contact_attempt_at: Optional[datetime] = None
    next_callback_at: Optional[datetime] = None

    # Fulfillment
    tracking_number: Optional[str] = None
    kit_returned_at: Optional[datetime] = None
    doctor_approval_status: Optional[DoctorApprovalStatus] = None
    doctor_approval_at: Optional[datetime] = None

    # Integrity flags
    is_duplicate: bool = False
    has_active_alerts: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.status, LeadStatus):
            raise ValueError(f"status must be a LeadStatus, got {self.status!r}")
        if not is_well_formed_mbi(self.mbi):
            raise ValueError(
                f"mbi must be {MBI_LENGTH} letters/digits starting with 1-9, got {self.mbi!r}"
            )
        if not self.first_name.strip() or not self.last_name.strip():
            raise ValueError("first_name and last_name must not be blank")
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        require_optional_utc_timestamp("advocate_reviewed_at", self.advocate_reviewed_at)
        require_optional_utc_timestamp("last_contact_attempt_at", self.last_contact_attempt_at)
        require_optional_utc_timestamp("next_callback_at", self.next_callback_at)
        require_optional_utc_timestamp("kit_returned_at", self.kit_returned_at)
        require_optional_utc_timestamp("doctor_approval_at", self.doctor_approval_at)
        if self.contact_attempts < 0:
            raise ValueError("contact_attempts must be >= 0")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def with_changes(self, **changes: Any) -> "Lead":
        return replace(self, **changes)


__all__ = [
    "LeadStatus",
    "TERMINAL_STATUSES",
    "TestType",
    "AdvocateDisposition",
    "CollectionsDisposition",
    "DoctorApprovalStatus",
    "Lead",
]
