"""
Row <-> domain value conversion shared by the repositories.

Supabase returns ISO-8601 strings (sometimes with a trailing 'Z'); the domain
model requires timezone-aware UTC datetimes, dates and enums.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID

from lead_pipeline.domain.time import require_utc_timestamp


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Naive timestamps are interpreted as UTC so the domain invariant holds.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        # Python's fromisoformat doesn't consistently accept 'Z' across versions.
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_utc_datetime(value)


def parse_optional_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def optional_text(row: Mapping[str, Any], key: str) -> Optional[str]:
    value = row.get(key)
    return str(value) if value not in (None, "") else None


def to_row_value(name: str, value: Any) -> Any:
    """Convert one domain value into its JSON-compatible column value."""

    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return to_iso_utc(value, name=name)
    if isinstance(value, date):
        return value.isoformat()
    return value


__all__ = [
    "to_iso_utc",
    "parse_utc_datetime",
    "parse_optional_datetime",
    "parse_optional_date",
    "optional_text",
    "to_row_value",
]
