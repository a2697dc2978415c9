"""
Reconciliation service.

Merges externally supplied batch records (decoded field maps from CSV
uploads, partner reports, etc.) into the lead store.

Per record:
1. Resolve logical fields through the shared alias lists
   (`domain.field_aliases.find_field_value`).
2. Normalize: phone to its last 10 digits, dates from any of the
   accepted formats. An unparseable date is dropped with a warning.
3. Run the identity matcher with the tracking-number tier enabled.
4. Apply the record according to the reconciliation kind:

   MASTER_DATA      match: update mutable fields on the best match, keeping
                    its identifier, status and owners.
                    no match: create a SUBMITTED lead, generating a
                    synthetic identifier when the record has none.
   KIT_RETURN       match: complete the kit on every lead in the matched
                    tier (terminal leads are logged no-ops).
                    no match: row error.
   DOCTOR_APPROVAL  match: record the approval decision; leads waiting in
                    SENT_TO_CONSULT move to APPROVED or RETURNED.
                    no match: row error.

Row failures are collected with their row number and never abort the batch.
Only a failure to read the input itself propagates.

Counting: `processed` counts rows applied without error; `created`,
`updated` and `skipped` count leads (a kit return matching two leads updates
two leads).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from lead_pipeline.config import Settings, get_settings
from lead_pipeline.domain.actor import SYSTEM_ACTOR
from lead_pipeline.domain.errors import ConflictError, LeadPipelineError, ValidationError
from lead_pipeline.domain.field_aliases import LeadField, find_field_value
from lead_pipeline.domain.identifiers import (
    clean_mbi,
    generate_synthetic_mbi,
    is_well_formed_mbi,
)
from lead_pipeline.domain.lead import DoctorApprovalStatus, Lead, LeadStatus, TestType
from lead_pipeline.domain.normalization import (
    date_to_utc_datetime,
    normalize_phone,
    parse_flexible_date,
    split_full_name,
)
from lead_pipeline.domain.status import plan_kit_completion, validate_transition
from lead_pipeline.domain.time import utc_now
from lead_pipeline.repositories import lead_repository
from lead_pipeline.services.identity_matcher import MatchCandidate, MatchResult, find_matches

logger = logging.getLogger(__name__)


class ReconciliationKind(str, Enum):
    MASTER_DATA = "MASTER_DATA"
    KIT_RETURN = "KIT_RETURN"
    DOCTOR_APPROVAL = "DOCTOR_APPROVAL"


@dataclass(frozen=True, slots=True)
class RowError:
    row_number: int
    message: str
    identifier: Optional[str] = None


@dataclass
class ReconciliationReport:
    """Running totals for one batch. Only the first `error_limit` row errors are kept."""

    kind: ReconciliationKind
    error_limit: int = 10
    total_rows: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    error_count: int = 0
    warning_count: int = 0
    errors: List[RowError] = field(default_factory=list)

    def add_error(self, error: RowError) -> None:
        self.error_count += 1
        if len(self.errors) < self.error_limit:
            self.errors.append(error)


ProgressCallback = Callable[[ReconciliationReport], None]

# Approval words seen in doctor-approval reports.
_APPROVAL_WORDS: Mapping[str, DoctorApprovalStatus] = {
    "APPROVED": DoctorApprovalStatus.APPROVED,
    "APPROVE": DoctorApprovalStatus.APPROVED,
    "YES": DoctorApprovalStatus.APPROVED,
    "Y": DoctorApprovalStatus.APPROVED,
    "DECLINED": DoctorApprovalStatus.DECLINED,
    "DECLINE": DoctorApprovalStatus.DECLINED,
    "DENIED": DoctorApprovalStatus.DECLINED,
    "REJECTED": DoctorApprovalStatus.DECLINED,
    "NO": DoctorApprovalStatus.DECLINED,
    "N": DoctorApprovalStatus.DECLINED,
    "PENDING": DoctorApprovalStatus.PENDING,
}

_APPROVAL_STATUS_MOVES: Mapping[DoctorApprovalStatus, LeadStatus] = {
    DoctorApprovalStatus.APPROVED: LeadStatus.APPROVED,
    DoctorApprovalStatus.DECLINED: LeadStatus.RETURNED,
}


@dataclass
class _RowContext:
    row_number: int
    record: Mapping[str, Any]
    report: ReconciliationReport

    def value(self, lead_field: LeadField) -> Optional[str]:
        return find_field_value(self.record, lead_field)

    def parsed_date(self, lead_field: LeadField) -> Optional[date]:
        raw = self.value(lead_field)
        if raw is None:
            return None
        parsed = parse_flexible_date(raw)
        if parsed is None:
            self.report.warning_count += 1
            logger.warning(
                f"Row {self.row_number}: discarding unparseable {lead_field.value} {raw!r}",
                extra={"row_number": self.row_number, "field": lead_field.value},
            )
        return parsed

    def names(self) -> tuple[Optional[str], Optional[str]]:
        first = self.value(LeadField.FIRST_NAME)
        last = self.value(LeadField.LAST_NAME)
        if first is None and last is None:
            first, last = split_full_name(self.value(LeadField.FULL_NAME))
        return first, last

    def candidate(self) -> MatchCandidate:
        first, last = self.names()
        return MatchCandidate(
            mbi=self.value(LeadField.MBI),
            first_name=first,
            last_name=last,
            phone=self.value(LeadField.PHONE),
            tracking_number=self.value(LeadField.TRACKING_NUMBER),
        )


def _parse_test_type(ctx: _RowContext) -> Optional[TestType]:
    raw = ctx.value(LeadField.TEST_TYPE)
    if raw is None:
        return None
    try:
        return TestType(raw.strip().upper())
    except ValueError:
        ctx.report.warning_count += 1
        logger.warning(
            f"Row {ctx.row_number}: ignoring unknown test type {raw!r}",
            extra={"row_number": ctx.row_number},
        )
        return None


def _match_or_fail(ctx: _RowContext) -> MatchResult:
    candidate = ctx.candidate()
    if candidate.is_empty:
        raise ValidationError("Row has no identifier to match (MBI, phone or tracking number)")
    match = find_matches(candidate, include_tracking=True)
    if not match.matched:
        raise ValidationError("No existing lead matches this row")
    return match


def _load(lead_id: Any) -> Lead:
    lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise ConflictError(f"Matched lead {lead_id} disappeared during reconciliation")
    return lead


def _write(lead: Lead, changes: Dict[str, Any], *, guard_status: bool = True) -> Lead:
    changes = {**changes, "updated_at": utc_now()}
    updated = lead_repository.update_lead_fields(
        lead.lead_id,
        changes,
        expected_status=lead.status if guard_status else None,
    )
    if updated is None:
        raise ConflictError(f"Lead {lead.lead_id} was modified concurrently")
    return updated


def _unused_synthetic_mbi(attempts: int) -> str:
    for _ in range(attempts):
        mbi = generate_synthetic_mbi()
        if not lead_repository.mbi_exists(mbi):
            return mbi
    raise ConflictError(f"Could not generate an unused plan identifier in {attempts} attempts")


def _apply_master_data(ctx: _RowContext, settings: Settings) -> None:
    report = ctx.report
    first, last = ctx.names()
    if not first or not last:
        raise ValidationError("Missing required field: first and last name")

    supplied_mbi = clean_mbi(ctx.value(LeadField.MBI))
    if supplied_mbi is not None and not is_well_formed_mbi(supplied_mbi):
        raise ValidationError(f"Malformed plan identifier {supplied_mbi!r}")

    fields: Dict[str, Any] = {
        "phone": normalize_phone(ctx.value(LeadField.PHONE)),
        "date_of_birth": ctx.parsed_date(LeadField.DATE_OF_BIRTH),
        "street": ctx.value(LeadField.STREET),
        "city": ctx.value(LeadField.CITY),
        "state": ctx.value(LeadField.STATE),
        "zip_code": ctx.value(LeadField.ZIP_CODE),
        "test_type": _parse_test_type(ctx),
        "tracking_number": ctx.value(LeadField.TRACKING_NUMBER),
    }

    match = find_matches(ctx.candidate(), include_tracking=True)
    if match.matched:
        lead = _load(match.best)
        changes = {
            name: value
            for name, value in fields.items()
            if value is not None and getattr(lead, name) != value
        }
        if not changes:
            report.skipped += 1
            return
        _write(lead, changes, guard_status=False)
        report.updated += 1
        logger.info(
            f"Row {ctx.row_number}: updated lead {lead.lead_id} ({match.tier.value} match)",
            extra={"row_number": ctx.row_number, "lead_id": str(lead.lead_id)},
        )
        return

    mbi = supplied_mbi or _unused_synthetic_mbi(settings.synthetic_id_attempts)
    now = utc_now()
    lead = Lead(
        lead_id=uuid4(),
        mbi=mbi,
        first_name=first,
        last_name=last,
        status=LeadStatus.SUBMITTED,
        created_at=now,
        updated_at=now,
        vendor_code=ctx.value(LeadField.VENDOR_CODE),
        **{name: value for name, value in fields.items() if value is not None},
    )
    lead_repository.insert_lead(lead)
    report.created += 1
    logger.info(
        f"Row {ctx.row_number}: created lead {lead.lead_id}",
        extra={
            "row_number": ctx.row_number,
            "lead_id": str(lead.lead_id),
            "synthetic_mbi": supplied_mbi is None,
        },
    )


def _event_time(ctx: _RowContext, lead_field: LeadField) -> datetime:
    parsed = ctx.parsed_date(lead_field)
    return date_to_utc_datetime(parsed) if parsed is not None else utc_now()


def _apply_kit_return(ctx: _RowContext, settings: Settings) -> None:
    report = ctx.report
    match = _match_or_fail(ctx)
    returned_at = _event_time(ctx, LeadField.RETURNED_DATE)
    tracking_number = ctx.value(LeadField.TRACKING_NUMBER)
    completion_status = ctx.value(LeadField.COMPLETION_STATUS)

    for lead_id in match.lead_ids:
        lead = _load(lead_id)
        plan = plan_kit_completion(
            lead,
            returned_at=returned_at,
            tracking_number=tracking_number,
            completion_status=completion_status,
        )
        if plan.is_noop:
            report.skipped += 1
            logger.warning(
                f"Row {ctx.row_number}: lead {lead_id} already {lead.status.value}; "
                "kit completion is a no-op",
                extra={"row_number": ctx.row_number, "lead_id": str(lead_id)},
            )
            continue
        _write(lead, plan.changes)
        report.updated += 1
        logger.info(
            f"Row {ctx.row_number}: kit completed for lead {lead_id}",
            extra={
                "row_number": ctx.row_number,
                "lead_id": str(lead_id),
                "progression": [status.value for status in plan.progression],
            },
        )


def _parse_approval(ctx: _RowContext) -> DoctorApprovalStatus:
    raw = ctx.value(LeadField.APPROVAL_STATUS)
    if raw is None:
        raise ValidationError("Missing required field: approval status")
    approval = _APPROVAL_WORDS.get(raw.strip().upper())
    if approval is None:
        raise ValidationError(f"Unknown approval status {raw!r}")
    return approval


def _apply_doctor_approval(ctx: _RowContext, settings: Settings) -> None:
    report = ctx.report
    approval = _parse_approval(ctx)
    match = _match_or_fail(ctx)
    decided_at = _event_time(ctx, LeadField.APPROVAL_DATE)

    for lead_id in match.lead_ids:
        lead = _load(lead_id)
        if lead.is_terminal:
            report.skipped += 1
            logger.info(
                f"Row {ctx.row_number}: lead {lead_id} is {lead.status.value}; approval ignored",
                extra={"row_number": ctx.row_number, "lead_id": str(lead_id)},
            )
            continue

        changes: Dict[str, Any] = {}
        if lead.doctor_approval_status != approval:
            changes["doctor_approval_status"] = approval
            changes["doctor_approval_at"] = decided_at

        target = _APPROVAL_STATUS_MOVES.get(approval)
        if target is not None:
            if lead.status is LeadStatus.SENT_TO_CONSULT:
                validate_transition(SYSTEM_ACTOR.role, lead.status, target)
                changes["status"] = target
            else:
                logger.info(
                    f"Row {ctx.row_number}: lead {lead_id} is {lead.status.value}, "
                    f"not SENT_TO_CONSULT; status kept",
                    extra={"row_number": ctx.row_number, "lead_id": str(lead_id)},
                )

        if not changes:
            report.skipped += 1
            continue
        _write(lead, changes)
        report.updated += 1


_APPLIERS: Mapping[ReconciliationKind, Callable[[_RowContext, Settings], None]] = {
    ReconciliationKind.MASTER_DATA: _apply_master_data,
    ReconciliationKind.KIT_RETURN: _apply_kit_return,
    ReconciliationKind.DOCTOR_APPROVAL: _apply_doctor_approval,
}


def _row_identifier(record: Mapping[str, Any]) -> Optional[str]:
    return (
        find_field_value(record, LeadField.MBI)
        or find_field_value(record, LeadField.TRACKING_NUMBER)
        or find_field_value(record, LeadField.PHONE)
    )


def reconcile(
    records: Iterable[Mapping[str, Any]],
    kind: ReconciliationKind,
    *,
    progress: Optional[ProgressCallback] = None,
    settings: Optional[Settings] = None,
    first_row_number: int = 2,
) -> ReconciliationReport:
    """
    Reconcile a batch of records.

    Args:
        records: decoded field maps, one per source row
        kind: what the batch describes
        progress: called with the running report every `progress_interval`
            rows and once at the end
        settings: runtime settings (defaults to the environment)
        first_row_number: row number of the first record (2 = first data row
            below a header line)

    Returns:
        ReconciliationReport with totals and the first N row errors.
    """

    settings = settings or get_settings()
    apply = _APPLIERS[ReconciliationKind(kind)]
    report = ReconciliationReport(kind=ReconciliationKind(kind), error_limit=settings.error_report_limit)

    logger.info(f"Starting {report.kind.value} reconciliation", extra={"kind": report.kind.value})

    for index, record in enumerate(records):
        row_number = first_row_number + index
        report.total_rows += 1
        ctx = _RowContext(row_number=row_number, record=record, report=report)
        try:
            apply(ctx, settings)
        except (LeadPipelineError, ValueError) as exc:
            report.add_error(
                RowError(row_number=row_number, message=str(exc), identifier=_row_identifier(record))
            )
            logger.warning(
                f"Row {row_number}: {exc}",
                extra={"row_number": row_number, "kind": report.kind.value},
            )
        else:
            report.processed += 1

        if report.total_rows % settings.progress_interval == 0:
            logger.info(
                f"Reconciliation progress: {report.total_rows} rows "
                f"({report.created} created, {report.updated} updated, {report.error_count} errors)",
                extra={"kind": report.kind.value, "total_rows": report.total_rows},
            )
            if progress is not None:
                progress(report)

    logger.info(
        f"Finished {report.kind.value} reconciliation: {report.total_rows} rows, "
        f"{report.created} created, {report.updated} updated, {report.skipped} skipped, "
        f"{report.error_count} errors",
        extra={"kind": report.kind.value, "total_rows": report.total_rows},
    )
    if progress is not None:
        progress(report)
    return report


__all__ = [
    "ReconciliationKind",
    "RowError",
    "ReconciliationReport",
    "ProgressCallback",
    "reconcile",
]
