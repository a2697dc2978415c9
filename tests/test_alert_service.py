"""
Tests for `services/alert_service.py`.

Covers:
- One unacknowledged DUPLICATE alert per (lead, related lead) no matter how
  often the check runs, including when the application read-check is lost to
  a race and only the storage unique index stops the second insert.
- has_active_alerts tracks open alerts exactly; is_duplicate is independent.
- Matching failures during the check fail open.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from lead_pipeline.domain.alert import Alert, AlertSeverity, AlertType
from lead_pipeline.domain.errors import NotFoundError, TransientStorageError
from lead_pipeline.repositories import alert_repository, lead_repository
from lead_pipeline.services import alert_service

SHARED_MBI = "1A2B3C4D5E6"


def _open_duplicate_rows(fake_db, lead_id, related_id):
    return [
        row
        for row in fake_db.rows("lead_alerts")
        if row["lead_id"] == str(lead_id)
        and row["related_lead_id"] == str(related_id)
        and row["alert_type"] == "DUPLICATE"
        and not row["is_acknowledged"]
    ]


def test_check_creates_alert_for_shared_identifier(make_lead):
    original = make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI, first_name="Augusta")

    result = alert_service.check_for_duplicate_alert(duplicate.lead_id)

    assert result.is_duplicate
    assert len(result.created_alerts) == 1
    alert = result.created_alerts[0]
    assert alert.lead_id == duplicate.lead_id
    assert alert.related_lead_id == original.lead_id
    assert alert.alert_type == AlertType.DUPLICATE
    assert alert.severity == AlertSeverity.HIGH
    assert not alert.is_acknowledged
    assert [a.alert_id for a in result.active_alerts] == [alert.alert_id]

    stored = lead_repository.get_lead_by_id(duplicate.lead_id)
    assert stored.is_duplicate
    assert stored.has_active_alerts


def test_repeated_checks_keep_exactly_one_open_alert(make_lead, fake_db):
    original = make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)

    created = [
        len(alert_service.check_for_duplicate_alert(duplicate.lead_id).created_alerts)
        for _ in range(3)
    ]

    assert created == [1, 0, 0]
    assert len(_open_duplicate_rows(fake_db, duplicate.lead_id, original.lead_id)) == 1


def test_storage_index_stops_duplicate_when_read_check_is_raced(make_lead, fake_db, monkeypatch):
    original = make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)
    alert_service.check_for_duplicate_alert(duplicate.lead_id)

    # Simulate a concurrent checker that read "no open alert" before ours landed.
    monkeypatch.setattr(alert_repository, "find_open_alert", lambda *args, **kwargs: None)
    result = alert_service.check_for_duplicate_alert(duplicate.lead_id)

    assert result.created_alerts == ()
    assert len(_open_duplicate_rows(fake_db, duplicate.lead_id, original.lead_id)) == 1


def test_unique_lead_gets_no_alert(make_lead):
    lead = make_lead(mbi=SHARED_MBI)

    result = alert_service.check_for_duplicate_alert(lead.lead_id)

    assert not result.is_duplicate
    assert result.created_alerts == ()
    assert not lead_repository.get_lead_by_id(lead.lead_id).has_active_alerts


def test_phone_match_alone_does_not_raise_alert(make_lead):
    make_lead(mbi="1A2B3C4D5E6", phone="4096262734")
    other = make_lead(mbi="2A2B3C4D5E6", phone="4096262734")

    result = alert_service.check_for_duplicate_alert(other.lead_id)

    assert result.created_alerts == ()
    assert not result.is_duplicate


def test_matching_failure_fails_open(make_lead, monkeypatch):
    make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)

    def boom(*args, **kwargs):
        raise TransientStorageError("timed out")

    monkeypatch.setattr(alert_service, "find_matches", boom)
    result = alert_service.check_for_duplicate_alert(duplicate.lead_id)

    assert result.created_alerts == ()
    assert not result.is_duplicate


def test_check_unknown_lead():
    with pytest.raises(NotFoundError):
        alert_service.check_for_duplicate_alert(uuid4())


def test_acknowledge_clears_active_flag_but_not_duplicate_flag(make_lead):
    make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)
    alert = alert_service.check_for_duplicate_alert(duplicate.lead_id).created_alerts[0]

    acknowledged = alert_service.acknowledge(alert.alert_id, "admin-1")

    assert acknowledged.is_acknowledged
    assert acknowledged.acknowledged_by == "admin-1"
    assert acknowledged.acknowledged_at is not None
    stored = lead_repository.get_lead_by_id(duplicate.lead_id)
    assert not stored.has_active_alerts
    assert stored.is_duplicate


def test_acknowledge_twice_keeps_first_actor(make_lead):
    make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)
    alert = alert_service.check_for_duplicate_alert(duplicate.lead_id).created_alerts[0]

    alert_service.acknowledge(alert.alert_id, "admin-1")
    again = alert_service.acknowledge(alert.alert_id, "admin-2")

    assert again.acknowledged_by == "admin-1"


def test_acknowledge_unknown_alert():
    with pytest.raises(NotFoundError):
        alert_service.acknowledge(uuid4(), "admin-1")


def test_active_flag_stays_while_other_alerts_are_open(make_lead):
    make_lead(mbi=SHARED_MBI)
    make_lead(mbi=SHARED_MBI)
    third = make_lead(mbi=SHARED_MBI)
    alerts = alert_service.check_for_duplicate_alert(third.lead_id).created_alerts
    assert len(alerts) == 2

    alert_service.acknowledge(alerts[0].alert_id, "admin-1")
    assert lead_repository.get_lead_by_id(third.lead_id).has_active_alerts

    alert_service.acknowledge(alerts[1].alert_id, "admin-1")
    assert not lead_repository.get_lead_by_id(third.lead_id).has_active_alerts


def test_mark_as_duplicate_acknowledges_open_duplicate_alerts(make_lead):
    make_lead(mbi=SHARED_MBI)
    duplicate = make_lead(mbi=SHARED_MBI)
    alert_service.check_for_duplicate_alert(duplicate.lead_id)

    result = alert_service.mark_as_duplicate(duplicate.lead_id, "advocate-7")

    assert len(result.acknowledged_alerts) == 1
    assert result.acknowledged_alerts[0].acknowledged_by == "advocate-7"
    assert result.lead.is_duplicate
    assert not result.lead.has_active_alerts


def test_mark_as_duplicate_without_alerts(make_lead):
    lead = make_lead(mbi=SHARED_MBI)

    result = alert_service.mark_as_duplicate(lead.lead_id, "advocate-7")

    assert result.acknowledged_alerts == ()
    assert lead_repository.get_lead_by_id(lead.lead_id).is_duplicate
    assert lead_repository.get_lead_by_id(lead.lead_id).advocate_id is None


def test_list_active_alerts_orders_by_severity_then_newest(make_lead):
    lead = make_lead(mbi=SHARED_MBI)
    base = datetime(2025, 2, 1, tzinfo=timezone.utc)

    def insert(severity, minutes, acknowledged=False):
        alert = Alert(
            alert_id=uuid4(),
            lead_id=lead.lead_id,
            related_lead_id=uuid4(),
            alert_type=AlertType.DATA_QUALITY,
            severity=severity,
            message=f"{severity.value} at {minutes}",
            created_at=base + timedelta(minutes=minutes),
            is_acknowledged=acknowledged,
            acknowledged_by="admin" if acknowledged else None,
            acknowledged_at=base if acknowledged else None,
        )
        return alert_repository.insert_alert(alert)

    old_high = insert(AlertSeverity.HIGH, 1)
    new_high = insert(AlertSeverity.HIGH, 5)
    critical = insert(AlertSeverity.CRITICAL, 0)
    low = insert(AlertSeverity.LOW, 10)
    insert(AlertSeverity.CRITICAL, 20, acknowledged=True)

    alerts = alert_service.list_active_alerts()
    assert [a.alert_id for a in alerts] == [
        critical.alert_id,
        new_high.alert_id,
        old_high.alert_id,
        low.alert_id,
    ]
    assert len(alert_service.list_active_alerts(limit=2)) == 2


def test_bulk_check_points_later_leads_at_the_oldest(make_lead, fake_db):
    oldest = make_lead(mbi=SHARED_MBI)
    second = make_lead(mbi=SHARED_MBI)
    third = make_lead(mbi=SHARED_MBI)
    make_lead(mbi="2A2B3C4D5E6")

    result = alert_service.run_bulk_duplicate_check()

    assert result.checked == 4
    assert result.duplicate_groups == 1
    assert result.alerts_created == 2
    assert len(_open_duplicate_rows(fake_db, second.lead_id, oldest.lead_id)) == 1
    assert len(_open_duplicate_rows(fake_db, third.lead_id, oldest.lead_id)) == 1
    assert lead_repository.get_lead_by_id(third.lead_id).is_duplicate
    assert not lead_repository.get_lead_by_id(oldest.lead_id).is_duplicate

    assert alert_service.run_bulk_duplicate_check().alerts_created == 0
