"""
Lead update service (status transitions and dispositions).

Applies a reviewer's update to one lead:
- the target status is resolved by `domain.status.resolve_transition`
  (disposition wins; a conflicting supplied status comes back as a warning)
- advocates may only update leads they own or nobody owns; the same holds for
  collections agents and the collections owner. Updating an unowned lead
  takes ownership of it in the same write.
- the write carries the status, the owner and (for counted contact attempts)
  the attempt counter read at the start as preconditions, so an update racing
  another update or a claim fails with ConflictError instead of overwriting it
- a DUPE disposition also runs the explicit mark-as-duplicate action
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from lead_pipeline.domain.actor import Actor, ActorRole
from lead_pipeline.domain.alert import Alert
from lead_pipeline.domain.errors import ConflictError, NotFoundError, ValidationError
from lead_pipeline.domain.lead import (
    AdvocateDisposition,
    CollectionsDisposition,
    Lead,
    LeadStatus,
    TestType,
)
from lead_pipeline.domain.status import CONTACT_ATTEMPT_DISPOSITIONS, resolve_transition
from lead_pipeline.domain.time import require_optional_utc_timestamp, utc_now
from lead_pipeline.repositories import lead_repository
from lead_pipeline.services import alert_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LeadUpdate:
    """
    Fields a reviewer may change in one request. None means "leave as is".
    """

    status: Optional[LeadStatus] = None
    advocate_disposition: Optional[AdvocateDisposition] = None
    advocate_notes: Optional[str] = None
    collections_disposition: Optional[CollectionsDisposition] = None
    collections_notes: Optional[str] = None
    next_callback_at: Optional[datetime] = None
    test_type: Optional[TestType] = None

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("next_callback_at", self.next_callback_at)


@dataclass(frozen=True, slots=True)
class LeadUpdateResult:
    """
    lead: the lead as stored after the update
    previous_status: status before the update
    warnings: flagged conflicts (e.g. supplied status overridden by a disposition)
    alerts: alerts created or acknowledged as a side effect
    """

    lead: Lead
    previous_status: LeadStatus
    warnings: Tuple[str, ...] = ()
    alerts: Tuple[Alert, ...] = ()

    @property
    def status_changed(self) -> bool:
        return self.lead.status != self.previous_status


def _owner_column(actor: Actor) -> Optional[str]:
    if actor.role is ActorRole.ADVOCATE:
        return "advocate_id"
    if actor.role is ActorRole.COLLECTIONS:
        return "collections_agent_id"
    return None


def _check_ownership(lead: Lead, actor: Actor, owner_column: Optional[str]) -> None:
    if owner_column is None:
        return
    owner = getattr(lead, owner_column)
    if owner not in (None, actor.actor_id):
        raise ConflictError(f"Lead {lead.lead_id} is assigned to {owner}")


def _build_changes(lead: Lead, update: LeadUpdate, target: Optional[LeadStatus], now: datetime) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}

    if target is not None:
        changes["status"] = target

    if update.advocate_disposition is not None:
        changes["advocate_disposition"] = AdvocateDisposition(update.advocate_disposition)
        changes["advocate_reviewed_at"] = now
    if update.advocate_notes is not None:
        changes["advocate_notes"] = update.advocate_notes

    if update.collections_disposition is not None:
        disposition = CollectionsDisposition(update.collections_disposition)
        changes["collections_disposition"] = disposition
        if disposition in CONTACT_ATTEMPT_DISPOSITIONS:
            changes["contact_attempts"] = lead.contact_attempts + 1
            changes["last_contact_attempt_at"] = now
        if disposition is CollectionsDisposition.SCHEDULED_CALLBACK:
            if update.next_callback_at is not None:
                changes["next_callback_at"] = update.next_callback_at
        else:
            changes["next_callback_at"] = None
    elif update.next_callback_at is not None:
        changes["next_callback_at"] = update.next_callback_at

    if update.collections_notes is not None:
        changes["collections_notes"] = update.collections_notes
    if update.test_type is not None:
        changes["test_type"] = TestType(update.test_type)

    return changes


def update_lead(lead_id: UUID, update: LeadUpdate, actor: Actor) -> LeadUpdateResult:
    """
    Apply one reviewer update.

    Raises:
        NotFoundError: unknown lead
        ValidationError: disallowed transition or disposition for the role
        ConflictError: lead owned by someone else, or changed concurrently
    """

    if actor.role is ActorRole.VENDOR:
        raise ValidationError("Role VENDOR may not update leads")

    lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead not found: {lead_id}")

    owner_column = _owner_column(actor)
    _check_ownership(lead, actor, owner_column)

    decision = resolve_transition(
        role=actor.role,
        current=lead.status,
        requested_status=update.status,
        advocate_disposition=update.advocate_disposition,
        collections_disposition=update.collections_disposition,
    )
    for warning in decision.warnings:
        logger.warning(
            f"Lead {lead_id}: {warning}",
            extra={"lead_id": str(lead_id), "actor_id": actor.actor_id},
        )

    now = utc_now()
    changes = _build_changes(lead, update, decision.target, now)
    if not changes:
        return LeadUpdateResult(lead=lead, previous_status=lead.status, warnings=decision.warnings)

    changes["updated_at"] = now
    expected_owner = None
    if owner_column is not None:
        # An unowned lead is claimed by the same write that updates it.
        expected_owner = getattr(lead, owner_column)
        if expected_owner is None:
            changes[owner_column] = actor.actor_id

    updated = lead_repository.update_lead_fields(
        lead_id,
        changes,
        expected_status=lead.status,
        owner_column=owner_column,
        expected_owner=expected_owner,
        expected_contact_attempts=(
            lead.contact_attempts if "contact_attempts" in changes else None
        ),
    )
    if updated is None:
        raise ConflictError(f"Lead {lead_id} was modified or claimed concurrently; reload and retry")

    if updated.status != lead.status:
        logger.info(
            f"Lead {lead_id} moved from {lead.status.value} to {updated.status.value}",
            extra={
                "lead_id": str(lead_id),
                "actor_id": actor.actor_id,
                "source": decision.source,
            },
        )

    alerts: Tuple[Alert, ...] = ()
    if update.advocate_disposition == AdvocateDisposition.DUPE:
        marked = alert_service.mark_as_duplicate(lead_id, actor.actor_id)
        updated = marked.lead
        alerts = marked.acknowledged_alerts

    return LeadUpdateResult(
        lead=updated,
        previous_status=lead.status,
        warnings=decision.warnings,
        alerts=alerts,
    )


__all__ = ["LeadUpdate", "LeadUpdateResult", "update_lead"]
