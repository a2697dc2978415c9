"""
Identity matching service.

Finds existing leads that represent the same patient as a candidate record.
One matcher serves both live duplicate alerts and bulk reconciliation.

Tiers are tried in strict precedence and matching stops at the first tier
that returns anything:
1. exact plan identifier (MBI), trimmed, case-sensitive
2. first + last name (case-insensitive) AND normalized phone
3. normalized phone alone
4. tracking number, only when the caller enables it

Blank candidate fields never participate. "No match" is a result, not an
error. The matcher only reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from lead_pipeline.domain.identifiers import clean_mbi
from lead_pipeline.domain.lead import Lead
from lead_pipeline.domain.normalization import clean_text, normalize_phone
from lead_pipeline.repositories.lead_repository import (
    find_lead_ids_by_mbi,
    find_lead_ids_by_name_and_phone,
    find_lead_ids_by_phone,
    find_lead_ids_by_tracking_number,
)


class MatchTier(str, Enum):
    MBI = "MBI"
    NAME_AND_PHONE = "NAME_AND_PHONE"
    PHONE = "PHONE"
    TRACKING = "TRACKING"
    NONE = "NONE"


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """
    Identity fields of a record to match. Any subset may be present.

    Values are normalized on construction: identifiers and names trimmed,
    phone reduced to its last 10 digits, blanks turned into None.
    """

    mbi: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    tracking_number: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "mbi", clean_mbi(self.mbi))
        object.__setattr__(self, "first_name", clean_text(self.first_name))
        object.__setattr__(self, "last_name", clean_text(self.last_name))
        object.__setattr__(self, "phone", normalize_phone(self.phone))
        object.__setattr__(self, "tracking_number", clean_text(self.tracking_number))

    @classmethod
    def from_lead(cls, lead: Lead) -> "MatchCandidate":
        return cls(
            mbi=lead.mbi,
            first_name=lead.first_name,
            last_name=lead.last_name,
            phone=lead.phone,
            tracking_number=lead.tracking_number,
        )

    @property
    def is_empty(self) -> bool:
        return not any((self.mbi, self.phone, self.tracking_number))


@dataclass(frozen=True, slots=True)
class MatchResult:
    """
    tier: the tier that produced the match (NONE when nothing matched)
    lead_ids: matching leads, oldest first
    """

    tier: MatchTier
    lead_ids: Tuple[UUID, ...] = ()

    @property
    def matched(self) -> bool:
        return self.tier is not MatchTier.NONE

    @property
    def best(self) -> Optional[UUID]:
        return self.lead_ids[0] if self.lead_ids else None


NO_MATCH = MatchResult(tier=MatchTier.NONE)


def find_matches(
    candidate: MatchCandidate,
    *,
    exclude_lead_id: Optional[UUID] = None,
    include_tracking: bool = False,
) -> MatchResult:
    """
    Run the tiered match for one candidate.

    Args:
        candidate: identity fields to match
        exclude_lead_id: lead to leave out of every tier (the candidate itself)
        include_tracking: enable the tracking-number tier

    Returns:
        MatchResult for the first tier with matches, or NO_MATCH.

    Raises:
        TransientStorageError / StorageError if a lookup fails. Callers that
        match opportunistically decide whether to fail open.
    """

    if candidate.mbi:
        ids = find_lead_ids_by_mbi(candidate.mbi, exclude=exclude_lead_id)
        if ids:
            return MatchResult(tier=MatchTier.MBI, lead_ids=tuple(ids))

    if candidate.first_name and candidate.last_name and candidate.phone:
        ids = find_lead_ids_by_name_and_phone(
            candidate.first_name,
            candidate.last_name,
            candidate.phone,
            exclude=exclude_lead_id,
        )
        if ids:
            return MatchResult(tier=MatchTier.NAME_AND_PHONE, lead_ids=tuple(ids))

    if candidate.phone:
        ids = find_lead_ids_by_phone(candidate.phone, exclude=exclude_lead_id)
        if ids:
            return MatchResult(tier=MatchTier.PHONE, lead_ids=tuple(ids))

    if include_tracking and candidate.tracking_number:
        ids = find_lead_ids_by_tracking_number(candidate.tracking_number, exclude=exclude_lead_id)
        if ids:
            return MatchResult(tier=MatchTier.TRACKING, lead_ids=tuple(ids))

    return NO_MATCH


__all__ = ["MatchTier", "MatchCandidate", "MatchResult", "NO_MATCH", "find_matches"]
