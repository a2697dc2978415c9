"""
Domain: lead lifecycle rules (pure).

Rules implemented here:
- Status is always a LeadStatus member; SUBMITTED is initial, KIT_COMPLETED
  and RETURNED are terminal.
- Explicit status changes are validated against a per-role allow-list of
  (from, to) edges. Anything outside the list raises ValidationError; nothing
  is coerced.
- Dispositions map to statuses through one total table. When an update
  carries a disposition, the derived status wins over any supplied status and
  the conflict is reported back as a warning.
- Kit completion may jump any non-terminal lead straight to KIT_COMPLETED,
  recording the implied progression as a note. Completing a terminal lead is
  a no-op.

This module performs no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from itertools import product
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple
from uuid import UUID

from .actor import ActorRole
from .errors import ValidationError
from .lead import (
    TERMINAL_STATUSES,
    AdvocateDisposition,
    CollectionsDisposition,
    Lead,
    LeadStatus,
)
from .time import require_utc_timestamp

Edge = Tuple[LeadStatus, LeadStatus]

# Main pipeline order, used to describe implied progressions.
PIPELINE_ORDER: Tuple[LeadStatus, ...] = (
    LeadStatus.SUBMITTED,
    LeadStatus.ADVOCATE_REVIEW,
    LeadStatus.QUALIFIED,
    LeadStatus.SENT_TO_CONSULT,
    LeadStatus.APPROVED,
    LeadStatus.READY_TO_SHIP,
    LeadStatus.SHIPPED,
    LeadStatus.DELIVERED,
    LeadStatus.COLLECTIONS,
    LeadStatus.KIT_RETURNING,
    LeadStatus.KIT_COMPLETED,
)

ADVOCATE_DISPOSITION_STATUS: Mapping[AdvocateDisposition, LeadStatus] = {
    AdvocateDisposition.DOESNT_QUALIFY: LeadStatus.QUALIFIED,
    AdvocateDisposition.PATIENT_DECLINED: LeadStatus.QUALIFIED,
    AdvocateDisposition.DUPE: LeadStatus.QUALIFIED,
    AdvocateDisposition.CONNECTED_TO_COMPLIANCE: LeadStatus.SENT_TO_CONSULT,
    AdvocateDisposition.COMPLIANCE_ISSUE: LeadStatus.ADVOCATE_REVIEW,
    AdvocateDisposition.CALL_BACK: LeadStatus.ADVOCATE_REVIEW,
    AdvocateDisposition.CALL_DROPPED: LeadStatus.ADVOCATE_REVIEW,
}

COLLECTIONS_DISPOSITION_STATUS: Mapping[CollectionsDisposition, LeadStatus] = {
    CollectionsDisposition.NO_ANSWER: LeadStatus.COLLECTIONS,
    CollectionsDisposition.SCHEDULED_CALLBACK: LeadStatus.COLLECTIONS,
    CollectionsDisposition.KIT_COMPLETED: LeadStatus.KIT_COMPLETED,
}

# Collections outcomes that count as a contact attempt.
CONTACT_ATTEMPT_DISPOSITIONS = frozenset(
    {CollectionsDisposition.NO_ANSWER, CollectionsDisposition.SCHEDULED_CALLBACK}
)

if set(ADVOCATE_DISPOSITION_STATUS) != set(AdvocateDisposition):
    raise RuntimeError("ADVOCATE_DISPOSITION_STATUS must cover every AdvocateDisposition")
if set(COLLECTIONS_DISPOSITION_STATUS) != set(CollectionsDisposition):
    raise RuntimeError("COLLECTIONS_DISPOSITION_STATUS must cover every CollectionsDisposition")


def _chain(*statuses: LeadStatus) -> FrozenSet[Edge]:
    return frozenset(zip(statuses, statuses[1:]))


ADVOCATE_SOURCES = frozenset(
    {
        LeadStatus.SUBMITTED,
        LeadStatus.ADVOCATE_REVIEW,
        LeadStatus.QUALIFIED,
        LeadStatus.SENT_TO_CONSULT,
    }
)
ADVOCATE_TARGETS = frozenset(
    {LeadStatus.ADVOCATE_REVIEW, LeadStatus.QUALIFIED, LeadStatus.SENT_TO_CONSULT}
)
COLLECTIONS_SOURCES = frozenset(
    {
        LeadStatus.SHIPPED,
        LeadStatus.DELIVERED,
        LeadStatus.COLLECTIONS,
        LeadStatus.KIT_RETURNING,
    }
)
COLLECTIONS_TARGETS = frozenset({LeadStatus.COLLECTIONS, LeadStatus.KIT_COMPLETED})

FULFILLMENT_EDGES = _chain(
    LeadStatus.APPROVED,
    LeadStatus.READY_TO_SHIP,
    LeadStatus.SHIPPED,
    LeadStatus.DELIVERED,
)

ROLE_EDGES: Mapping[ActorRole, FrozenSet[Edge]] = {
    ActorRole.ADVOCATE: frozenset(product(ADVOCATE_SOURCES, ADVOCATE_TARGETS)),
    ActorRole.COLLECTIONS: frozenset(product(COLLECTIONS_SOURCES, COLLECTIONS_TARGETS)),
    ActorRole.FULFILLMENT: FULFILLMENT_EDGES,
    ActorRole.ADMIN: FULFILLMENT_EDGES
    | {
        (LeadStatus.SENT_TO_CONSULT, LeadStatus.APPROVED),
        (LeadStatus.DELIVERED, LeadStatus.KIT_RETURNING),
        (LeadStatus.COLLECTIONS, LeadStatus.KIT_RETURNING),
        (LeadStatus.KIT_RETURNING, LeadStatus.KIT_COMPLETED),
    }
    | {(status, LeadStatus.RETURNED) for status in LeadStatus if status not in TERMINAL_STATUSES},
    ActorRole.VENDOR: frozenset(),
}

DISPOSITION_ROLES = {
    "advocate": frozenset({ActorRole.ADVOCATE, ActorRole.ADMIN}),
    "collections": frozenset({ActorRole.COLLECTIONS, ActorRole.ADMIN}),
}


def derive_status_from_disposition(disposition: AdvocateDisposition) -> LeadStatus:
    """Total mapping from an advocate disposition to the status it implies."""

    return ADVOCATE_DISPOSITION_STATUS[AdvocateDisposition(disposition)]


def derive_status_from_collections_disposition(disposition: CollectionsDisposition) -> LeadStatus:
    return COLLECTIONS_DISPOSITION_STATUS[CollectionsDisposition(disposition)]


def is_allowed_transition(role: ActorRole, current: LeadStatus, target: LeadStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    return (current, target) in ROLE_EDGES.get(role, frozenset())


def validate_transition(role: ActorRole, current: LeadStatus, target: LeadStatus) -> None:
    """
    Raise ValidationError unless `role` may move a lead from `current` to `target`.
    """

    if current in TERMINAL_STATUSES:
        raise ValidationError(
            f"Lead is in terminal status {current.value}; cannot move to {target.value}"
        )
    if not is_allowed_transition(role, current, target):
        raise ValidationError(
            f"Role {role.value} may not move a lead from {current.value} to {target.value}"
        )


@dataclass(frozen=True, slots=True)
class TransitionDecision:
    """
    Outcome of resolving the status an update should produce.

    target: status to persist, or None when the update does not touch status
    source: "advocate_disposition", "collections_disposition", "explicit" or "none"
    warnings: human-readable flags (e.g. a supplied status overridden by a disposition)
    """

    target: Optional[LeadStatus]
    source: str
    warnings: Tuple[str, ...] = ()


def resolve_transition(
    *,
    role: ActorRole,
    current: LeadStatus,
    requested_status: Optional[LeadStatus] = None,
    advocate_disposition: Optional[AdvocateDisposition] = None,
    collections_disposition: Optional[CollectionsDisposition] = None,
) -> TransitionDecision:
    """
    Decide and validate the status produced by one update.

    Dispositions are validated against their phase's allow-list (a disposition
    is a phase outcome, whoever records it); explicit statuses against the
    actor's role.

    Raises:
        ValidationError: both dispositions supplied, role may not record the
            disposition, or the resulting transition is not allowed
    """

    if advocate_disposition is not None and collections_disposition is not None:
        raise ValidationError("An update may carry an advocate or a collections disposition, not both")

    if advocate_disposition is not None:
        if role not in DISPOSITION_ROLES["advocate"]:
            raise ValidationError(f"Role {role.value} may not record an advocate disposition")
        target = derive_status_from_disposition(advocate_disposition)
        phase_role = ActorRole.ADVOCATE
        source = "advocate_disposition"
        disposition_value = AdvocateDisposition(advocate_disposition).value
    elif collections_disposition is not None:
        if role not in DISPOSITION_ROLES["collections"]:
            raise ValidationError(f"Role {role.value} may not record a collections disposition")
        target = derive_status_from_collections_disposition(collections_disposition)
        phase_role = ActorRole.COLLECTIONS
        source = "collections_disposition"
        disposition_value = CollectionsDisposition(collections_disposition).value
    else:
        if requested_status is None:
            return TransitionDecision(target=None, source="none")
        target = LeadStatus(requested_status)
        validate_transition(role, current, target)
        return TransitionDecision(target=target, source="explicit")

    warnings: Tuple[str, ...] = ()
    if requested_status is not None and LeadStatus(requested_status) != target:
        warnings = (
            f"Supplied status {LeadStatus(requested_status).value} was overridden: "
            f"disposition {disposition_value} sets {target.value}",
        )

    validate_transition(phase_role, current, target)
    return TransitionDecision(target=target, source=source, warnings=warnings)


def implied_progression(current: LeadStatus, target: LeadStatus = LeadStatus.KIT_COMPLETED) -> Tuple[LeadStatus, ...]:
    """
    Statuses a lead implicitly passed through when physical evidence moves it
    straight to `target`. Leads that never reached SHIPPED are taken to have
    shipped.
    """

    if current in TERMINAL_STATUSES or current == target:
        return (current,)
    if PIPELINE_ORDER.index(current) < PIPELINE_ORDER.index(LeadStatus.SHIPPED):
        return (current, LeadStatus.SHIPPED, target)
    return (current, target)


def append_note(existing: Optional[str], note: str) -> str:
    if existing:
        return f"{existing}\n\n{note}"
    return note


@dataclass(frozen=True, slots=True)
class KitCompletionPlan:
    """
    Field changes for completing a kit on one lead.

    is_noop is True when the lead is already terminal; `changes` is then empty.
    """

    lead_id: UUID
    previous_status: LeadStatus
    is_noop: bool
    progression: Tuple[LeadStatus, ...]
    changes: Dict[str, Any] = field(default_factory=dict)


def plan_kit_completion(
    lead: Lead,
    *,
    returned_at: datetime,
    tracking_number: Optional[str] = None,
    completion_status: Optional[str] = None,
    source: str = "kit return report",
) -> KitCompletionPlan:
    """
    Plan moving `lead` to KIT_COMPLETED from a physical completion record.

    The completion note lists the tracking number, completion status and
    return date; when the lead skipped digital steps, the implied progression
    is appended to it.
    """

    require_utc_timestamp("returned_at", returned_at)

    if lead.is_terminal:
        return KitCompletionPlan(
            lead_id=lead.lead_id,
            previous_status=lead.status,
            is_noop=True,
            progression=(lead.status,),
        )

    progression = implied_progression(lead.status)
    tracking = tracking_number or lead.tracking_number
    lines = [
        "Kit return completed:",
        f"  - Tracking number: {tracking or 'not available'}",
        f"  - Completion status: {completion_status or 'completed'}",
        f"  - Return date: {returned_at.date().isoformat()}",
    ]
    if len(progression) > 2:
        path = " -> ".join(status.value for status in progression)
        lines.append("")
        lines.append(f"Status progression: {path} (via {source})")

    changes: Dict[str, Any] = {
        "status": LeadStatus.KIT_COMPLETED,
        "collections_disposition": CollectionsDisposition.KIT_COMPLETED,
        "kit_returned_at": returned_at,
        "collections_notes": append_note(lead.collections_notes, "\n".join(lines)),
    }
    if tracking_number and not lead.tracking_number:
        changes["tracking_number"] = tracking_number

    return KitCompletionPlan(
        lead_id=lead.lead_id,
        previous_status=lead.status,
        is_noop=False,
        progression=progression,
        changes=changes,
    )


__all__ = [
    "PIPELINE_ORDER",
    "ADVOCATE_DISPOSITION_STATUS",
    "COLLECTIONS_DISPOSITION_STATUS",
    "CONTACT_ATTEMPT_DISPOSITIONS",
    "ROLE_EDGES",
    "derive_status_from_disposition",
    "derive_status_from_collections_disposition",
    "is_allowed_transition",
    "validate_transition",
    "TransitionDecision",
    "resolve_transition",
    "implied_progression",
    "append_note",
    "KitCompletionPlan",
    "plan_kit_completion",
]
