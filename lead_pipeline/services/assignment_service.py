"""
Assignment service (exclusive claims).

A lead has at most one owning reviewer per phase: `advocate_id` for advocate
review and `collections_agent_id` for collections. Claiming is a single
conditional update (owner IS NULL and status claimable); whoever's write
lands first wins and everybody else gets ALREADY_ASSIGNED with the winner's
id. Being turned away is a result, not an exception.

Outcomes:
- CLAIMED           this call took ownership
- ALREADY_OWNED     the requester already owns the lead (idempotent no-op)
- ALREADY_ASSIGNED  somebody else owns it; the current owner is reported
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, Optional
from uuid import UUID

from lead_pipeline.domain.errors import NotFoundError, ValidationError
from lead_pipeline.domain.lead import Lead, LeadStatus
from lead_pipeline.domain.time import utc_now
from lead_pipeline.repositories import lead_repository

logger = logging.getLogger(__name__)

ADVOCATE_CLAIMABLE: FrozenSet[LeadStatus] = frozenset(
    {LeadStatus.SUBMITTED, LeadStatus.ADVOCATE_REVIEW}
)
COLLECTIONS_CLAIMABLE: FrozenSet[LeadStatus] = frozenset(
    {LeadStatus.SHIPPED, LeadStatus.DELIVERED, LeadStatus.COLLECTIONS}
)


class ClaimOutcome(str, Enum):
    CLAIMED = "CLAIMED"
    ALREADY_OWNED = "ALREADY_OWNED"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"


@dataclass(frozen=True, slots=True)
class ClaimResult:
    outcome: ClaimOutcome
    lead: Lead
    owner_id: Optional[str]

    @property
    def granted(self) -> bool:
        """True when the requester owns the lead after the call."""

        return self.outcome in (ClaimOutcome.CLAIMED, ClaimOutcome.ALREADY_OWNED)


def _claim(
    lead_id: UUID,
    requester_id: str,
    *,
    phase: str,
    owner_of: Callable[[Lead], Optional[str]],
    claimable: FrozenSet[LeadStatus],
    write: Callable[[UUID, str], Optional[Lead]],
) -> ClaimResult:
    if not requester_id or not requester_id.strip():
        raise ValidationError("Reviewer id is required to claim a lead")

    lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise NotFoundError(f"Lead not found: {lead_id}")

    owner = owner_of(lead)
    if owner == requester_id:
        return ClaimResult(outcome=ClaimOutcome.ALREADY_OWNED, lead=lead, owner_id=owner)
    if owner is not None:
        return ClaimResult(outcome=ClaimOutcome.ALREADY_ASSIGNED, lead=lead, owner_id=owner)
    if lead.status not in claimable:
        allowed = ", ".join(sorted(status.value for status in claimable))
        raise ValidationError(
            f"Lead {lead_id} is {lead.status.value}; {phase} claims require one of: {allowed}"
        )

    claimed = write(lead_id, requester_id)
    if claimed is not None:
        logger.info(
            f"Lead {lead_id} claimed by {requester_id} ({phase})",
            extra={"lead_id": str(lead_id), "owner_id": requester_id, "phase": phase},
        )
        return ClaimResult(outcome=ClaimOutcome.CLAIMED, lead=claimed, owner_id=requester_id)

    # The conditional write matched nothing: another claim (or a status
    # change) landed between our read and our write. Report what is stored now.
    current = lead_repository.get_lead_by_id(lead_id)
    if current is None:
        raise NotFoundError(f"Lead not found: {lead_id}")
    current_owner = owner_of(current)
    logger.info(
        f"Lost claim race on lead {lead_id}; owner is {current_owner}",
        extra={"lead_id": str(lead_id), "requester_id": requester_id, "phase": phase},
    )
    if current_owner == requester_id:
        return ClaimResult(outcome=ClaimOutcome.ALREADY_OWNED, lead=current, owner_id=current_owner)
    if current_owner is None:
        raise ValidationError(
            f"Lead {lead_id} moved to {current.status.value} and can no longer be claimed"
        )
    return ClaimResult(outcome=ClaimOutcome.ALREADY_ASSIGNED, lead=current, owner_id=current_owner)


def claim(lead_id: UUID, reviewer_id: str) -> ClaimResult:
    """
    Claim a lead for advocate review.

    Preconditions: no advocate owner, status SUBMITTED or ADVOCATE_REVIEW.
    Effect: advocate_id=reviewer_id, status=ADVOCATE_REVIEW, reviewed now.

    Raises:
        NotFoundError: unknown lead
        ValidationError: unowned lead in a status that cannot be claimed
    """

    return _claim(
        lead_id,
        reviewer_id,
        phase="advocate",
        owner_of=lambda lead: lead.advocate_id,
        claimable=ADVOCATE_CLAIMABLE,
        write=lambda target, owner: lead_repository.claim_advocate(
            target, owner, claimable_statuses=ADVOCATE_CLAIMABLE, reviewed_at=utc_now()
        ),
    )


def claim_collections(lead_id: UUID, agent_id: str) -> ClaimResult:
    """
    Claim a lead for the collections phase.

    Preconditions: no collections owner, status SHIPPED, DELIVERED or COLLECTIONS.
    Effect: collections_agent_id=agent_id, status=COLLECTIONS.
    """

    return _claim(
        lead_id,
        agent_id,
        phase="collections",
        owner_of=lambda lead: lead.collections_agent_id,
        claimable=COLLECTIONS_CLAIMABLE,
        write=lambda target, owner: lead_repository.claim_collections_agent(
            target, owner, claimable_statuses=COLLECTIONS_CLAIMABLE, claimed_at=utc_now()
        ),
    )


__all__ = [
    "ADVOCATE_CLAIMABLE",
    "COLLECTIONS_CLAIMABLE",
    "ClaimOutcome",
    "ClaimResult",
    "claim",
    "claim_collections",
]
