"""
Field normalization helpers shared by intake, matching and reconciliation.

All helpers are pure. Blank input yields None, and an unparseable date
yields None rather than raising.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

PHONE_DIGITS = 10
MIN_PLAUSIBLE_YEAR = 1900

_NON_DIGITS = re.compile(r"\D")
_REPEATED_SLASHES = re.compile(r"/+")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_DASH_US_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")


def clean_text(value: Any) -> Optional[str]:
    """Strip a cell value; blank or missing values become None."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_phone(value: Any) -> Optional[str]:
    """
    Normalize a phone number for storage and matching.

    Keeps digits only and, when longer, the last 10 digits (drops a leading
    country code). Returns None when no digits remain.

    Example:
        normalize_phone("+1 (409) 626-2734")  # "4096262734"
    """

    text = clean_text(value)
    if text is None:
        return None
    digits = _NON_DIGITS.sub("", text)
    if not digits:
        return None
    return digits[-PHONE_DIGITS:]


def _expand_two_digit_year(year: int) -> int:
    return year + (2000 if year < 30 else 1900)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    if year < MIN_PLAUSIBLE_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_flexible_date(value: Any) -> Optional[date]:
    """
    Parse a date written in any of the formats seen in source files.

    Accepted:
    - MM/DD/YYYY and M/D/YYYY (doubled slashes such as 02/15//1945 collapse)
    - MM/DD/YY (years below 30 map to 20xx, others to 19xx)
    - MM-DD-YYYY
    - YYYY-MM-DD and ISO-8601 timestamps

    Returns None for blank or unparseable input, including implausible years.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = clean_text(value)
    if text is None:
        return None

    slashed = _REPEATED_SLASHES.sub("/", text).strip("/")
    match = _SLASH_DATE.match(slashed)
    if match:
        month, day, year = (int(part) for part in match.groups())
        if len(match.group(3)) == 2:
            year = _expand_two_digit_year(year)
        return _safe_date(year, month, day)

    match = _DASH_US_DATE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return _safe_date(parsed.year, parsed.month, parsed.day)


def date_to_utc_datetime(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def split_full_name(value: Any) -> tuple[Optional[str], Optional[str]]:
    """Split "First [Middle] Last" into (first, last); single words give (word, None)."""

    text = clean_text(value)
    if text is None:
        return None, None
    parts = text.split()
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[-1]


__all__ = [
    "clean_text",
    "normalize_phone",
    "parse_flexible_date",
    "date_to_utc_datetime",
    "split_full_name",
]
