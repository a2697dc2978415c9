#!/usr/bin/env python3
"""
CSV Reconciliation Script

Reads a partner CSV (master data, kit returns or doctor approvals), hands
each row to the reconciliation service as a field map and prints a summary.

Column names do not need to match exactly: every logical field is resolved
through its alias list (e.g. "Medicare #", "mbi" and "MBI" all name the plan
identifier).

Usage:
    lead-reconcile master-data path/to/patients.csv
    lead-reconcile kit-return path/to/returns.csv --error-log returns_errors.json
    python -m lead_pipeline.scripts.reconcile_csv doctor-approval approvals.csv
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Iterator

from lead_pipeline.domain.errors import TransientStorageError
from lead_pipeline.services.reconciliation_service import (
    ReconciliationKind,
    ReconciliationReport,
    reconcile,
)

logger = logging.getLogger(__name__)

KIND_CHOICES = {
    "master-data": ReconciliationKind.MASTER_DATA,
    "kit-return": ReconciliationKind.KIT_RETURN,
    "doctor-approval": ReconciliationKind.DOCTOR_APPROVAL,
}


def read_csv_rows(csv_path: str) -> Iterator[Dict[str, str]]:
    """
    Yield rows of a CSV file as dictionaries keyed by header.

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If the CSV has no header line
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_file, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames:
            raise ValueError("CSV file is empty or malformed")
        for row in reader:
            # DictReader puts overflow cells under a None key.
            yield {key: value for key, value in row.items() if key is not None}


def print_summary(report: ReconciliationReport) -> None:
    """Print reconciliation summary statistics."""
    print()
    print("=" * 60)
    print(f"RECONCILIATION SUMMARY ({report.kind.value})")
    print("=" * 60)
    print(f"Total Rows:       {report.total_rows}")
    print(f"Processed:        {report.processed}")
    print(f"Created:          {report.created}")
    print(f"Updated:          {report.updated}")
    print(f"Skipped:          {report.skipped}")
    print(f"Warnings:         {report.warning_count}")
    print()

    if report.error_count:
        print(f"Errors:           {report.error_count}")
        print()
        print(f"First {len(report.errors)} errors:")
        for error in report.errors:
            print(f"  - Row {error.row_number}: {error.message}")
        if report.error_count > len(report.errors):
            print(f"  ... and {report.error_count - len(report.errors)} more")
    else:
        print("No errors!")

    print("=" * 60)


def save_error_log(report: ReconciliationReport, output_path: str) -> None:
    """Save the reported row errors to a JSON file."""
    if not report.errors:
        return

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([asdict(error) for error in report.errors], f, indent=2)

    print(f"\nError log saved to: {output_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reconcile partner CSV records into the lead store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Patient master data (creates unmatched leads)
  lead-reconcile master-data patients.csv

  # Kit return report
  lead-reconcile kit-return returns.csv

  # Save row errors to a custom path
  lead-reconcile doctor-approval approvals.csv --error-log approval_errors.json
        """,
    )
    parser.add_argument("kind", choices=sorted(KIND_CHOICES), help="What the CSV describes")
    parser.add_argument("csv_path", help="Path to the CSV file")
    parser.add_argument(
        "--error-log",
        default=None,
        help="Path to save the reported row errors as JSON",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        print(f"Reading CSV: {args.csv_path}")
        report = reconcile(read_csv_rows(args.csv_path), KIND_CHOICES[args.kind])
        print_summary(report)

        if args.error_log:
            save_error_log(report, args.error_log)

        # Exit code based on results
        return 1 if report.error_count else 0

    except KeyboardInterrupt:
        print("\n\nReconciliation interrupted by user")
        return 130

    except (FileNotFoundError, ValueError, TransientStorageError) as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
