"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Responses are built from the domain dataclasses with `model_validate`.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from lead_pipeline.domain.alert import AlertSeverity, AlertType
from lead_pipeline.domain.lead import (
    AdvocateDisposition,
    CollectionsDisposition,
    DoctorApprovalStatus,
    LeadStatus,
    TestType,
)
from lead_pipeline.services.assignment_service import ClaimOutcome
from lead_pipeline.services.identity_matcher import MatchTier
from lead_pipeline.services.reconciliation_service import ReconciliationKind


# ============================================================================
# Lead Models
# ============================================================================

class LeadResponse(BaseModel):
    """Single lead in API responses."""
    lead_id: UUID
    mbi: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    vendor_code: Optional[str] = None
    status: LeadStatus
    test_type: Optional[TestType] = None
    advocate_id: Optional[str] = None
    advocate_disposition: Optional[AdvocateDisposition] = None
    advocate_notes: Optional[str] = None
    advocate_reviewed_at: Optional[datetime] = None
    collections_agent_id: Optional[str] = None
    collections_disposition: Optional[CollectionsDisposition] = None
    collections_notes: Optional[str] = None
    contact_attempts: int = 0
    last_contact_attempt_at: Optional[datetime] = None
    next_callback_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    kit_returned_at: Optional[datetime] = None
    doctor_approval_status: Optional[DoctorApprovalStatus] = None
    doctor_approval_at: Optional[datetime] = None
    is_duplicate: bool = False
    has_active_alerts: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AlertResponse(BaseModel):
    """Single alert in API responses."""
    alert_id: UUID
    lead_id: UUID
    related_lead_id: Optional[UUID] = None
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    is_acknowledged: bool
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    created_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class LeadCreateRequest(BaseModel):
    """Direct lead intake."""
    mbi: str = Field(..., description="11-character plan identifier")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    test_type: Optional[TestType] = None
    vendor_code: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "mbi": "1A2B3C4D5E6",
                "first_name": "Ada",
                "last_name": "Lovelace",
                "phone": "(409) 626-2734",
                "date_of_birth": "1945-02-15",
                "state": "TX",
                "test_type": "IMMUNE",
            }
        }


class LeadCreateResponse(BaseModel):
    lead: LeadResponse
    alerts: List[AlertResponse]


class LeadDetailResponse(BaseModel):
    lead: LeadResponse
    active_alerts: List[AlertResponse]


class LeadUpdateRequest(BaseModel):
    """Reviewer update. Omitted fields are left unchanged."""
    status: Optional[LeadStatus] = None
    advocate_disposition: Optional[AdvocateDisposition] = None
    advocate_notes: Optional[str] = None
    collections_disposition: Optional[CollectionsDisposition] = None
    collections_notes: Optional[str] = None
    next_callback_at: Optional[datetime] = None
    test_type: Optional[TestType] = None

    class Config:
        json_schema_extra = {
            "example": {
                "advocate_disposition": "CONNECTED_TO_COMPLIANCE",
                "advocate_notes": "Transferred to compliance line",
            }
        }


class LeadUpdateResponse(BaseModel):
    lead: LeadResponse
    previous_status: LeadStatus
    warnings: List[str]
    alerts: List[AlertResponse]


class ClaimResponse(BaseModel):
    """Result of a claim. `granted` is True when the caller owns the lead."""
    outcome: ClaimOutcome
    granted: bool
    owner_id: Optional[str] = None
    lead: LeadResponse


class MatchRequest(BaseModel):
    mbi: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    tracking_number: Optional[str] = None
    include_tracking: bool = False


class MatchResponse(BaseModel):
    tier: MatchTier
    lead_ids: List[UUID]


# ============================================================================
# Alert Models
# ============================================================================

class AlertCheckResponse(BaseModel):
    lead_id: UUID
    is_duplicate: bool
    created_alerts: List[AlertResponse]
    active_alerts: List[AlertResponse]


class DuplicateMarkResponse(BaseModel):
    lead: LeadResponse
    acknowledged_alerts: List[AlertResponse]


class AlertListResponse(BaseModel):
    alerts: List[AlertResponse]
    total_count: int


class BulkCheckResponse(BaseModel):
    checked: int
    duplicate_groups: int
    alerts_created: int


# ============================================================================
# Reconciliation Models
# ============================================================================

class ReconciliationRequest(BaseModel):
    """Decoded batch records; field names may follow any known alias."""
    kind: ReconciliationKind
    records: List[Dict[str, Any]] = Field(..., description="One field map per source row")
    first_row_number: int = Field(2, ge=1, description="Row number of the first record")

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "KIT_RETURN",
                "records": [
                    {"Medicare #": "1A2B3C4D5E6", "Tracking Number": "1Z999AA10123456784"}
                ],
            }
        }


class RowErrorResponse(BaseModel):
    row_number: int
    message: str
    identifier: Optional[str] = None

    class Config:
        from_attributes = True


class ReconciliationResponse(BaseModel):
    kind: ReconciliationKind
    total_rows: int
    processed: int
    created: int
    updated: int
    skipped: int
    error_count: int
    warning_count: int
    errors: List[RowErrorResponse]

    class Config:
        from_attributes = True
