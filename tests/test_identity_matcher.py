"""
Tests for `services/identity_matcher.py`.

Covers:
- Strict tier precedence, stopping at the first tier with matches.
- Blank fields never participate; no match is a normal result.
- Results are ordered oldest first; the candidate itself can be excluded.
- The tracking-number tier is opt-in.
"""

from __future__ import annotations

from lead_pipeline.services.identity_matcher import (
    MatchCandidate,
    MatchTier,
    find_matches,
)


def test_mbi_tier_wins_over_phone(make_lead):
    by_mbi = make_lead(mbi="1A2B3C4D5E6", phone="4096262734")
    make_lead(mbi="2A2B3C4D5E6", phone="4096262734")

    result = find_matches(MatchCandidate(mbi="1A2B3C4D5E6", phone="4096262734"))

    assert result.tier == MatchTier.MBI
    assert result.lead_ids == (by_mbi.lead_id,)


def test_mbi_is_trimmed_and_case_sensitive(make_lead):
    lead = make_lead(mbi="1A2B3C4D5E6")

    assert find_matches(MatchCandidate(mbi="  1A2B3C4D5E6  ")).lead_ids == (lead.lead_id,)
    assert find_matches(MatchCandidate(mbi="1a2b3c4d5e6")).tier == MatchTier.NONE


def test_name_and_phone_tier_is_case_insensitive(make_lead):
    lead = make_lead(mbi="1A2B3C4D5E6", first_name="Ada", last_name="Lovelace", phone="4096262734")
    make_lead(mbi="2A2B3C4D5E6", first_name="Charles", last_name="Babbage", phone="4096262734")

    result = find_matches(
        MatchCandidate(first_name="ADA", last_name="lovelace", phone="+1 (409) 626-2734")
    )

    assert result.tier == MatchTier.NAME_AND_PHONE
    assert result.lead_ids == (lead.lead_id,)


def test_name_match_does_not_treat_wildcards_as_patterns(make_lead):
    make_lead(mbi="1A2B3C4D5E6", first_name="Ada", last_name="Lovelace", phone="4096262734")

    result = find_matches(MatchCandidate(first_name="A%", last_name="Lovelace", phone="4096262734"))

    assert result.tier == MatchTier.PHONE


def test_phone_tier_orders_oldest_first(make_lead):
    first = make_lead(mbi="1A2B3C4D5E6", first_name="Ada", phone="4096262734")
    second = make_lead(mbi="2A2B3C4D5E6", first_name="Grace", phone="4096262734")

    result = find_matches(MatchCandidate(first_name="Alan", last_name="Turing", phone="409-626-2734"))

    assert result.tier == MatchTier.PHONE
    assert result.lead_ids == (first.lead_id, second.lead_id)
    assert result.best == first.lead_id


def test_tracking_tier_only_when_enabled(make_lead):
    lead = make_lead(mbi="1A2B3C4D5E6", tracking_number="1Z999AA10123456784")
    candidate = MatchCandidate(tracking_number="1Z999AA10123456784")

    assert find_matches(candidate).tier == MatchTier.NONE

    result = find_matches(candidate, include_tracking=True)
    assert result.tier == MatchTier.TRACKING
    assert result.lead_ids == (lead.lead_id,)


def test_blank_fields_do_not_match(make_lead):
    make_lead(mbi="1A2B3C4D5E6")

    result = find_matches(MatchCandidate(mbi="  ", phone="", tracking_number=" "), include_tracking=True)

    assert result.tier == MatchTier.NONE
    assert result.lead_ids == ()
    assert not result.matched


def test_exclude_lead_id(make_lead):
    lead = make_lead(mbi="1A2B3C4D5E6")

    result = find_matches(MatchCandidate(mbi="1A2B3C4D5E6"), exclude_lead_id=lead.lead_id)

    assert result.tier == MatchTier.NONE


def test_matching_is_read_only(make_lead, fake_db):
    make_lead(mbi="1A2B3C4D5E6", phone="4096262734")
    fake_db.executed.clear()

    find_matches(MatchCandidate(mbi="9A2B3C4D5E6", phone="4096262734", tracking_number="X"), include_tracking=True)

    assert {operation for _table, operation in fake_db.executed} == {"select"}
