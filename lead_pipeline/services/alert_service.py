"""
Alert service.

Detects and de-duplicates integrity concerns per lead.

Rules (from the lead lifecycle contract):
- A duplicate check reruns identity matching on the lead's own identity,
  excluding the lead itself. Only plan-identifier (MBI) matches raise alerts.
- One DUPLICATE/HIGH alert per (lead, related lead) while unacknowledged.
  The storage unique index enforces this; losing the check-then-insert race
  is reported as "already exists", not as an error.
- `has_active_alerts` is recomputed from storage after every change and is
  true iff at least one unacknowledged alert references the lead.
- Acknowledging never clears `is_duplicate`.
- Matching failures during an opportunistic check are logged and treated as
  no match so the read path that triggered it is never blocked.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from lead_pipeline.domain.alert import Alert, AlertSeverity, AlertType
from lead_pipeline.domain.errors import ConflictError, NotFoundError, StorageError
from lead_pipeline.domain.lead import Lead
from lead_pipeline.domain.time import utc_now
from lead_pipeline.repositories import alert_repository, lead_repository
from lead_pipeline.services.identity_matcher import (
    NO_MATCH,
    MatchCandidate,
    MatchTier,
    find_matches,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_ALERT_LIMIT = 50


@dataclass(frozen=True, slots=True)
class AlertCheckResult:
    """
    Result of a duplicate check on one lead.

    created_alerts: alerts inserted by this check (empty when all existed)
    active_alerts: every unacknowledged alert on the lead after the check
    """

    lead_id: UUID
    is_duplicate: bool
    created_alerts: Tuple[Alert, ...]
    active_alerts: Tuple[Alert, ...]


@dataclass(frozen=True, slots=True)
class DuplicateMarkResult:
    lead: Lead
    acknowledged_alerts: Tuple[Alert, ...]


@dataclass(frozen=True, slots=True)
class BulkCheckResult:
    """
    checked: leads examined
    duplicate_groups: plan identifiers shared by more than one lead
    alerts_created: alerts inserted (existing open alerts are not counted)
    """

    checked: int
    duplicate_groups: int
    alerts_created: int


def _require_lead(lead_id: UUID) -> Lead:
    lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead not found: {lead_id}")
    return lead


def _create_duplicate_alert(lead: Lead, related_lead_id: UUID, tier: MatchTier) -> Optional[Alert]:
    """Insert one open DUPLICATE alert; None when an open one already exists."""

    if alert_repository.find_open_alert(lead.lead_id, related_lead_id, AlertType.DUPLICATE):
        return None

    alert = Alert(
        alert_id=uuid4(),
        lead_id=lead.lead_id,
        related_lead_id=related_lead_id,
        alert_type=AlertType.DUPLICATE,
        severity=AlertSeverity.HIGH,
        message=f"Plan identifier {lead.mbi} is also used by lead {related_lead_id}",
        created_at=utc_now(),
        metadata={"match_tier": tier.value, "mbi": lead.mbi},
    )
    try:
        created = alert_repository.insert_alert(alert)
    except ConflictError:
        # A concurrent check inserted the same alert between our read and write.
        logger.info(
            f"Duplicate alert already exists for lead {lead.lead_id}",
            extra={"lead_id": str(lead.lead_id), "related_lead_id": str(related_lead_id)},
        )
        return None

    logger.info(
        f"Created duplicate alert for lead {lead.lead_id}",
        extra={
            "alert_id": str(created.alert_id),
            "lead_id": str(lead.lead_id),
            "related_lead_id": str(related_lead_id),
        },
    )
    return created


def refresh_alert_flag(lead: Lead, *, is_duplicate: Optional[bool] = None) -> Lead:
    """
    Recompute `has_active_alerts` from storage (and optionally set
    `is_duplicate`), writing only when a flag actually changes.
    """

    changes = {}
    has_active = alert_repository.count_open_alerts(lead.lead_id) > 0
    if has_active != lead.has_active_alerts:
        changes["has_active_alerts"] = has_active
    if is_duplicate is not None and is_duplicate != lead.is_duplicate:
        changes["is_duplicate"] = is_duplicate
    if not changes:
        return lead

    changes["updated_at"] = utc_now()
    updated = lead_repository.update_lead_fields(lead.lead_id, changes)
    return updated or lead.with_changes(**changes)


def check_for_duplicate_alert(lead_id: UUID) -> AlertCheckResult:
    """
    Check one lead for plan-identifier duplicates and raise alerts.

    Idempotent: repeated checks leave exactly one open alert per related lead.

    Raises:
        NotFoundError: unknown lead
    """

    lead = _require_lead(lead_id)

    try:
        match = find_matches(MatchCandidate.from_lead(lead), exclude_lead_id=lead.lead_id)
    except StorageError as exc:
        logger.warning(
            f"Duplicate check for lead {lead_id} skipped: identity matching failed",
            extra={"lead_id": str(lead_id), "detail": str(exc)},
        )
        match = NO_MATCH

    created: List[Alert] = []
    is_duplicate = match.tier is MatchTier.MBI
    if is_duplicate:
        for related_lead_id in match.lead_ids:
            alert = _create_duplicate_alert(lead, related_lead_id, match.tier)
            if alert is not None:
                created.append(alert)

    lead = refresh_alert_flag(lead, is_duplicate=True if is_duplicate else None)
    active = alert_repository.list_alerts_for_lead(lead.lead_id, open_only=True)
    return AlertCheckResult(
        lead_id=lead.lead_id,
        is_duplicate=lead.is_duplicate,
        created_alerts=tuple(created),
        active_alerts=tuple(active),
    )


def acknowledge(alert_id: UUID, actor_id: str) -> Alert:
    """
    Acknowledge an alert and recompute its lead's active-alert flag.

    Acknowledging an already-acknowledged alert returns it unchanged.

    Raises:
        NotFoundError: unknown alert
    """

    alert = alert_repository.acknowledge_alert(alert_id, actor_id, utc_now())
    if alert is None:
        existing = alert_repository.get_alert(alert_id)
        if existing is None:
            raise NotFoundError(f"Alert not found: {alert_id}")
        return existing

    logger.info(
        f"Alert {alert_id} acknowledged by {actor_id}",
        extra={"alert_id": str(alert_id), "lead_id": str(alert.lead_id), "actor_id": actor_id},
    )
    lead = lead_repository.get_lead_by_id(alert.lead_id)
    if lead is not None:
        refresh_alert_flag(lead)
    return alert


def mark_as_duplicate(lead_id: UUID, actor_id: str) -> DuplicateMarkResult:
    """
    Explicit reviewer action: flag the lead as a duplicate and acknowledge its
    open DUPLICATE alerts as the reviewer.

    Raises:
        NotFoundError: unknown lead
    """

    lead = _require_lead(lead_id)
    now = utc_now()

    acknowledged: List[Alert] = []
    for alert in alert_repository.list_alerts_for_lead(
        lead_id, open_only=True, alert_type=AlertType.DUPLICATE
    ):
        done = alert_repository.acknowledge_alert(alert.alert_id, actor_id, now)
        if done is not None:
            acknowledged.append(done)

    lead = refresh_alert_flag(lead, is_duplicate=True)
    logger.info(
        f"Lead {lead_id} marked as duplicate by {actor_id}",
        extra={"lead_id": str(lead_id), "actor_id": actor_id, "acknowledged": len(acknowledged)},
    )
    return DuplicateMarkResult(lead=lead, acknowledged_alerts=tuple(acknowledged))


def list_active_alerts(limit: int = DEFAULT_ACTIVE_ALERT_LIMIT) -> List[Alert]:
    return alert_repository.list_active_alerts(limit=limit)


def run_bulk_duplicate_check() -> BulkCheckResult:
    """
    Scan every lead for shared plan identifiers.

    Within each group sharing an identifier, the oldest lead is the original;
    every later lead gets an alert pointing at it and is flagged duplicate.
    """

    groups: "OrderedDict[str, List[UUID]]" = OrderedDict()
    identities = lead_repository.list_lead_identities()
    for lead_id, mbi, _created_at in identities:
        groups.setdefault(mbi, []).append(lead_id)

    duplicate_groups = 0
    alerts_created = 0
    for mbi, lead_ids in groups.items():
        if len(lead_ids) < 2:
            continue
        duplicate_groups += 1
        original_id = lead_ids[0]
        for duplicate in lead_repository.get_leads_by_ids(lead_ids[1:]):
            if _create_duplicate_alert(duplicate, original_id, MatchTier.MBI) is not None:
                alerts_created += 1
            refresh_alert_flag(duplicate, is_duplicate=True)

    logger.info(
        f"Bulk duplicate check finished: {duplicate_groups} duplicate groups, "
        f"{alerts_created} alerts created",
        extra={"checked": len(identities), "duplicate_groups": duplicate_groups},
    )
    return BulkCheckResult(
        checked=len(identities),
        duplicate_groups=duplicate_groups,
        alerts_created=alerts_created,
    )


__all__ = [
    "AlertCheckResult",
    "DuplicateMarkResult",
    "BulkCheckResult",
    "refresh_alert_flag",
    "check_for_duplicate_alert",
    "acknowledge",
    "mark_as_duplicate",
    "list_active_alerts",
    "run_bulk_duplicate_check",
]
