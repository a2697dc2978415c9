"""
Tests for `services/reconciliation_service.py`.

Covers:
- Master data updates a matched lead in place, keeping its identifier,
  status and owners; unmatched rows create SUBMITTED leads, with a synthetic
  identifier when the row has none.
- Kit returns complete every matched lead; re-running a report is a counted
  no-op, not an error.
- Doctor approvals move leads waiting in SENT_TO_CONSULT.
- Bad rows are reported with their row number and never abort the batch.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import httpx

from lead_pipeline.config import Settings
from lead_pipeline.domain.identifiers import AMBIGUOUS_LETTERS, is_well_formed_mbi
from lead_pipeline.domain.lead import (
    CollectionsDisposition,
    DoctorApprovalStatus,
    LeadStatus,
    TestType,
)
from lead_pipeline.repositories import lead_repository
from lead_pipeline.services.reconciliation_service import (
    ReconciliationKind,
    reconcile,
)


def _stored_leads(fake_db):
    return [lead_repository.get_lead_by_id(row["lead_id"]) for row in fake_db.rows("leads")]


class TestMasterData:
    def test_matched_row_updates_fields_and_keeps_identity(self, make_lead, settings):
        lead = make_lead(
            mbi="1A2B3C4D5E6",
            status=LeadStatus.SENT_TO_CONSULT,
            advocate_id="adv-1",
        )
        record = {
            "Medicare #": "1A2B3C4D5E6",
            "First Name": "Ada",
            "Last Name": "Lovelace",
            "Phone Number": "+1 (409) 626-2734",
            "CITY": "Austin",
            "test": "neuro",
        }

        report = reconcile([record], ReconciliationKind.MASTER_DATA, settings=settings)

        assert (report.created, report.updated, report.error_count) == (0, 1, 0)
        stored = lead_repository.get_lead_by_id(lead.lead_id)
        assert stored.mbi == "1A2B3C4D5E6"
        assert stored.status == LeadStatus.SENT_TO_CONSULT
        assert stored.advocate_id == "adv-1"
        assert stored.phone == "4096262734"
        assert stored.city == "Austin"
        assert stored.test_type == TestType.NEURO

    def test_unchanged_row_is_skipped(self, make_lead, settings):
        make_lead(mbi="1A2B3C4D5E6", city="Austin")

        report = reconcile(
            [{"mbi": "1A2B3C4D5E6", "first_name": "Ada", "last_name": "Lovelace", "city": "Austin"}],
            ReconciliationKind.MASTER_DATA,
            settings=settings,
        )

        assert (report.updated, report.skipped) == (0, 1)

    def test_unmatched_row_without_identifier_gets_synthetic_one(self, fake_db, settings):
        report = reconcile(
            [{"Patient Name": "Grace Brewster Hopper", "dob": "12/09/1906", "zip": "10001"}],
            ReconciliationKind.MASTER_DATA,
            settings=settings,
        )

        assert report.created == 1
        (lead,) = _stored_leads(fake_db)
        assert lead.status == LeadStatus.SUBMITTED
        assert (lead.first_name, lead.last_name) == ("Grace", "Hopper")
        assert lead.date_of_birth == date(1906, 12, 9)
        assert is_well_formed_mbi(lead.mbi)
        assert not set(lead.mbi[1:]) & AMBIGUOUS_LETTERS

    def test_unmatched_row_keeps_supplied_identifier(self, fake_db, settings):
        reconcile(
            [{"mbi": " 2A2B3C4D5E6 ", "first_name": "Alan", "last_name": "Turing"}],
            ReconciliationKind.MASTER_DATA,
            settings=settings,
        )

        (lead,) = _stored_leads(fake_db)
        assert lead.mbi == "2A2B3C4D5E6"

    def test_malformed_identifier_is_a_row_error(self, fake_db, settings):
        report = reconcile(
            [{"mbi": "ABC", "first_name": "Alan", "last_name": "Turing"}],
            ReconciliationKind.MASTER_DATA,
            settings=settings,
        )

        assert report.error_count == 1
        assert report.errors[0].row_number == 2
        assert report.errors[0].identifier == "ABC"
        assert fake_db.rows("leads") == []

    def test_bad_rows_are_reported_and_batch_continues(self, fake_db, settings):
        records = [
            {"first_name": "Alan", "last_name": "Turing"},
            {"first_name": "Nameless"},
            {"first_name": "Grace", "last_name": "Hopper"},
        ]

        report = reconcile(records, ReconciliationKind.MASTER_DATA, settings=settings)

        assert report.total_rows == 3
        assert report.processed == 2
        assert report.created == 2
        assert [error.row_number for error in report.errors] == [3]
        assert "name" in report.errors[0].message
        assert len(fake_db.rows("leads")) == 2

    def test_only_first_errors_are_kept(self, settings):
        limited = Settings(
            supabase_url=None,
            supabase_key=None,
            error_report_limit=2,
            progress_interval=100,
        )

        report = reconcile([{"city": "Austin"}] * 5, ReconciliationKind.MASTER_DATA, settings=limited)

        assert report.error_count == 5
        assert [error.row_number for error in report.errors] == [2, 3]

    def test_transient_storage_failure_is_a_row_error(self, fake_db, settings):
        fake_db.inject_failure(httpx.ReadTimeout("timed out"), table="leads", operation="select")
        records = [
            {"mbi": "2A2B3C4D5E6", "first_name": "Alan", "last_name": "Turing"},
            {"mbi": "3A2B3C4D5E6", "first_name": "Grace", "last_name": "Hopper"},
        ]

        report = reconcile(records, ReconciliationKind.MASTER_DATA, settings=settings)

        assert report.error_count == 1
        assert report.errors[0].row_number == 2
        assert report.created == 1

    def test_progress_is_reported_periodically_and_at_the_end(self, settings):
        seen = []
        records = [{"first_name": f"Person{n}", "last_name": "Test"} for n in range(5)]

        reconcile(
            records,
            ReconciliationKind.MASTER_DATA,
            settings=settings,
            progress=lambda report: seen.append(report.total_rows),
        )

        assert seen == [2, 4, 5]


class TestKitReturn:
    def test_rerunning_a_report_is_a_noop(self, make_lead, settings):
        lead = make_lead(status=LeadStatus.DELIVERED, tracking_number="1Z999AA10123456784")
        record = {"RETURN TRACKING #": "1Z999AA10123456784", "return_date": "03/01/2025"}

        first = reconcile([record], ReconciliationKind.KIT_RETURN, settings=settings)
        second = reconcile([record], ReconciliationKind.KIT_RETURN, settings=settings)

        assert (first.updated, first.error_count) == (1, 0)
        assert (second.updated, second.skipped, second.error_count) == (0, 1, 0)
        stored = lead_repository.get_lead_by_id(lead.lead_id)
        assert stored.status == LeadStatus.KIT_COMPLETED
        assert stored.collections_disposition == CollectionsDisposition.KIT_COMPLETED
        assert stored.kit_returned_at == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_pre_shipment_lead_records_implied_progression(self, make_lead, settings):
        lead = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.APPROVED)

        reconcile(
            [{"mbi": "1A2B3C4D5E6", "tracking_number": "1ZNEW", "completed_date": "2025-03-02"}],
            ReconciliationKind.KIT_RETURN,
            settings=settings,
        )

        stored = lead_repository.get_lead_by_id(lead.lead_id)
        assert stored.status == LeadStatus.KIT_COMPLETED
        assert stored.tracking_number == "1ZNEW"
        assert "APPROVED -> SHIPPED -> KIT_COMPLETED" in stored.collections_notes

    def test_every_lead_in_the_matched_tier_is_completed(self, make_lead, settings):
        first = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.SHIPPED)
        second = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.COLLECTIONS)

        report = reconcile([{"mbi": "1A2B3C4D5E6"}], ReconciliationKind.KIT_RETURN, settings=settings)

        assert report.updated == 2
        assert report.processed == 1
        for lead in (first, second):
            assert lead_repository.get_lead_by_id(lead.lead_id).status == LeadStatus.KIT_COMPLETED

    def test_unmatched_row_is_an_error(self, settings):
        report = reconcile(
            [{"tracking_number": "1ZUNKNOWN"}, {"city": "Austin"}],
            ReconciliationKind.KIT_RETURN,
            settings=settings,
        )

        assert report.error_count == 2
        assert [error.row_number for error in report.errors] == [2, 3]

    def test_unparseable_date_is_a_warning(self, make_lead, settings):
        lead = make_lead(status=LeadStatus.SHIPPED, tracking_number="1Z1")

        report = reconcile(
            [{"tracking_number": "1Z1", "return_date": "sometime in March"}],
            ReconciliationKind.KIT_RETURN,
            settings=settings,
        )

        assert report.error_count == 0
        assert report.warning_count == 1
        assert lead_repository.get_lead_by_id(lead.lead_id).kit_returned_at is not None


class TestDoctorApproval:
    def test_approval_moves_lead_waiting_for_consult(self, make_lead, settings):
        lead = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.SENT_TO_CONSULT)

        report = reconcile(
            [{"mbi": "1A2B3C4D5E6", "decision": "Approved", "decision_date": "03/05/2025"}],
            ReconciliationKind.DOCTOR_APPROVAL,
            settings=settings,
        )

        assert report.updated == 1
        stored = lead_repository.get_lead_by_id(lead.lead_id)
        assert stored.status == LeadStatus.APPROVED
        assert stored.doctor_approval_status == DoctorApprovalStatus.APPROVED
        assert stored.doctor_approval_at == datetime(2025, 3, 5, tzinfo=timezone.utc)

    def test_decline_returns_lead(self, make_lead, settings):
        lead = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.SENT_TO_CONSULT)

        reconcile(
            [{"mbi": "1A2B3C4D5E6", "approval_status": "denied"}],
            ReconciliationKind.DOCTOR_APPROVAL,
            settings=settings,
        )

        assert lead_repository.get_lead_by_id(lead.lead_id).status == LeadStatus.RETURNED

    def test_approval_elsewhere_in_pipeline_keeps_status(self, make_lead, settings):
        lead = make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.SHIPPED)

        reconcile(
            [{"mbi": "1A2B3C4D5E6", "approval_status": "yes"}],
            ReconciliationKind.DOCTOR_APPROVAL,
            settings=settings,
        )

        stored = lead_repository.get_lead_by_id(lead.lead_id)
        assert stored.status == LeadStatus.SHIPPED
        assert stored.doctor_approval_status == DoctorApprovalStatus.APPROVED

    def test_unknown_approval_word_is_a_row_error(self, make_lead, settings):
        make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.SENT_TO_CONSULT)

        report = reconcile(
            [{"mbi": "1A2B3C4D5E6", "approval_status": "maybe"}],
            ReconciliationKind.DOCTOR_APPROVAL,
            settings=settings,
        )

        assert report.error_count == 1
        assert "maybe" in report.errors[0].message

    def test_terminal_lead_is_skipped(self, make_lead, settings):
        make_lead(mbi="1A2B3C4D5E6", status=LeadStatus.KIT_COMPLETED)

        report = reconcile(
            [{"mbi": "1A2B3C4D5E6", "approval_status": "approved"}],
            ReconciliationKind.DOCTOR_APPROVAL,
            settings=settings,
        )

        assert (report.updated, report.skipped, report.error_count) == (0, 1, 0)
