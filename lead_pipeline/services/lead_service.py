"""
Lead intake and read path.

- `create_lead` is direct creation: the plan identifier must be well formed
  and unused, and a collision is a ConflictError (reconciliation is the path
  that matches-then-updates instead).
- `get_lead` runs the opportunistic duplicate check before returning. The
  check fails open: a storage failure inside it is logged and the lead is
  still returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple
from uuid import UUID, uuid4

from lead_pipeline.domain.actor import Actor, ActorRole
from lead_pipeline.domain.alert import Alert
from lead_pipeline.domain.errors import ConflictError, NotFoundError, StorageError, ValidationError
from lead_pipeline.domain.identifiers import require_well_formed_mbi
from lead_pipeline.domain.lead import Lead, LeadStatus, TestType
from lead_pipeline.domain.normalization import clean_text, normalize_phone
from lead_pipeline.domain.time import utc_now
from lead_pipeline.repositories import alert_repository, lead_repository
from lead_pipeline.services import alert_service

logger = logging.getLogger(__name__)

INTAKE_ROLES = frozenset({ActorRole.VENDOR, ActorRole.ADMIN})


@dataclass(frozen=True, slots=True)
class LeadIntake:
    mbi: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    test_type: Optional[TestType] = None
    vendor_code: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LeadCreateResult:
    lead: Lead
    alerts: Tuple[Alert, ...] = ()


@dataclass(frozen=True, slots=True)
class LeadView:
    lead: Lead
    active_alerts: Tuple[Alert, ...] = ()


def create_lead(intake: LeadIntake, actor: Actor) -> LeadCreateResult:
    """
    Create a SUBMITTED lead from a direct intake.

    Raises:
        ValidationError: role may not create leads, missing name, malformed MBI
        ConflictError: the MBI is already in use
    """

    if actor.role not in INTAKE_ROLES:
        raise ValidationError(f"Role {actor.role.value} may not create leads")

    mbi = require_well_formed_mbi(intake.mbi)
    first_name = clean_text(intake.first_name)
    last_name = clean_text(intake.last_name)
    if not first_name or not last_name:
        raise ValidationError("First and last name are required")

    if lead_repository.mbi_exists(mbi):
        raise ConflictError(f"A lead with plan identifier {mbi} already exists")

    now = utc_now()
    lead = lead_repository.insert_lead(
        Lead(
            lead_id=uuid4(),
            mbi=mbi,
            first_name=first_name,
            last_name=last_name,
            status=LeadStatus.SUBMITTED,
            created_at=now,
            updated_at=now,
            phone=normalize_phone(intake.phone),
            date_of_birth=intake.date_of_birth,
            street=clean_text(intake.street),
            city=clean_text(intake.city),
            state=clean_text(intake.state),
            zip_code=clean_text(intake.zip_code),
            test_type=TestType(intake.test_type) if intake.test_type else None,
            vendor_code=clean_text(intake.vendor_code),
        )
    )
    logger.info(
        f"Lead {lead.lead_id} created by {actor.actor_id}",
        extra={"lead_id": str(lead.lead_id), "actor_id": actor.actor_id},
    )

    # Two intakes for the same MBI can both pass the existence check; the
    # duplicate check surfaces that as an alert.
    alerts: Tuple[Alert, ...] = ()
    try:
        check = alert_service.check_for_duplicate_alert(lead.lead_id)
    except StorageError as exc:
        logger.warning(
            f"Duplicate check after creating lead {lead.lead_id} failed",
            extra={"lead_id": str(lead.lead_id), "detail": str(exc)},
        )
    else:
        alerts = check.created_alerts
        lead = lead_repository.get_lead_by_id(lead.lead_id) or lead

    return LeadCreateResult(lead=lead, alerts=alerts)


def get_lead(lead_id: UUID, *, check_duplicates: bool = True) -> LeadView:
    """
    Read one lead with its open alerts.

    Raises:
        NotFoundError: unknown lead
    """

    if check_duplicates:
        try:
            alert_service.check_for_duplicate_alert(lead_id)
        except StorageError as exc:
            logger.warning(
                f"Duplicate check on read of lead {lead_id} failed",
                extra={"lead_id": str(lead_id), "detail": str(exc)},
            )

    lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead not found: {lead_id}")
    active = alert_repository.list_alerts_for_lead(lead_id, open_only=True)
    return LeadView(lead=lead, active_alerts=tuple(active))


__all__ = [
    "INTAKE_ROLES",
    "LeadIntake",
    "LeadCreateResult",
    "LeadView",
    "create_lead",
    "get_lead",
]
