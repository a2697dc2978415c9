"""
Alert repository (persistence).

Storage for integrity alerts. The partial unique index on
(lead_id, related_lead_id, alert_type) WHERE NOT is_acknowledged is the
authority on alert de-duplication: a second insert for an open pair surfaces
here as ConflictError and callers treat it as "already exists".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional
from uuid import UUID

from lead_pipeline.domain.alert import SEVERITY_RANK, Alert, AlertSeverity, AlertType
from lead_pipeline.repositories.client import execute, get_supabase
from lead_pipeline.repositories.serialization import (
    optional_text,
    parse_optional_datetime,
    parse_utc_datetime,
    to_iso_utc,
    to_row_value,
)

# Keep this aligned with db/schema.sql.
_ALERTS_TABLE: str = "lead_alerts"


def _alert_to_row(alert: Alert) -> dict[str, Any]:
    row = {
        name: to_row_value(name, getattr(alert, name))
        for name in Alert.__dataclass_fields__
        if name != "metadata"
    }
    row["metadata"] = dict(alert.metadata)
    return row


def _row_to_alert(row: Mapping[str, Any]) -> Alert:
    related = row.get("related_lead_id")
    return Alert(
        alert_id=UUID(str(row["alert_id"])),
        lead_id=UUID(str(row["lead_id"])),
        related_lead_id=UUID(str(related)) if related else None,
        alert_type=AlertType(str(row["alert_type"])),
        severity=AlertSeverity(str(row["severity"])),
        message=str(row.get("message") or ""),
        created_at=parse_utc_datetime(row["created_at"]),
        is_acknowledged=bool(row.get("is_acknowledged", False)),
        acknowledged_by=optional_text(row, "acknowledged_by"),
        acknowledged_at=parse_optional_datetime(row.get("acknowledged_at")),
        metadata=dict(row.get("metadata") or {}),
    )


def insert_alert(alert: Alert) -> Alert:
    """
    Insert an alert.

    Raises:
    - ConflictError when an unacknowledged alert for the same
      (lead_id, related_lead_id, alert_type) already exists.
    """

    rows = execute(
        get_supabase().table(_ALERTS_TABLE).insert(_alert_to_row(alert)),
        action="create alert",
    )
    return _row_to_alert(rows[0]) if rows else alert


def get_alert(alert_id: UUID) -> Alert | None:
    rows = execute(
        get_supabase().table(_ALERTS_TABLE).select("*").eq("alert_id", str(alert_id)).limit(1),
        action="fetch alert",
    )
    if not rows:
        return None
    return _row_to_alert(rows[0])


def list_alerts_for_lead(
    lead_id: UUID,
    *,
    open_only: bool = False,
    alert_type: Optional[AlertType] = None,
) -> List[Alert]:
    """Alerts attached to a lead, newest first."""

    query = get_supabase().table(_ALERTS_TABLE).select("*").eq("lead_id", str(lead_id))
    if open_only:
        query = query.eq("is_acknowledged", False)
    if alert_type is not None:
        query = query.eq("alert_type", AlertType(alert_type).value)
    rows = execute(query.order("created_at", desc=True), action="list alerts for lead")
    return [_row_to_alert(row) for row in rows]


def find_open_alert(
    lead_id: UUID,
    related_lead_id: Optional[UUID],
    alert_type: AlertType,
) -> Alert | None:
    query = (
        get_supabase()
        .table(_ALERTS_TABLE)
        .select("*")
        .eq("lead_id", str(lead_id))
        .eq("alert_type", AlertType(alert_type).value)
        .eq("is_acknowledged", False)
    )
    if related_lead_id is None:
        query = query.is_("related_lead_id", "null")
    else:
        query = query.eq("related_lead_id", str(related_lead_id))
    rows = execute(query.limit(1), action="find open alert")
    if not rows:
        return None
    return _row_to_alert(rows[0])


def count_open_alerts(lead_id: UUID) -> int:
    rows = execute(
        get_supabase()
        .table(_ALERTS_TABLE)
        .select("alert_id")
        .eq("lead_id", str(lead_id))
        .eq("is_acknowledged", False),
        action="count open alerts",
    )
    return len(rows)


def acknowledge_alert(alert_id: UUID, actor_id: str, acknowledged_at: datetime) -> Alert | None:
    """
    Acknowledge an open alert.

    The write only applies while the alert is still unacknowledged, so the
    first acknowledgement is the one kept.

    Returns:
        The acknowledged alert, or None if the alert was unknown or already
        acknowledged.
    """

    rows = execute(
        get_supabase()
        .table(_ALERTS_TABLE)
        .update(
            {
                "is_acknowledged": True,
                "acknowledged_by": actor_id,
                "acknowledged_at": to_iso_utc(acknowledged_at, name="acknowledged_at"),
            }
        )
        .eq("alert_id", str(alert_id))
        .eq("is_acknowledged", False),
        action="acknowledge alert",
    )
    if not rows:
        return None
    return _row_to_alert(rows[0])


def list_active_alerts(limit: int = 50) -> List[Alert]:
    """
    Unacknowledged alerts across all leads, highest severity first and newest
    first within a severity.
    """

    if limit <= 0:
        return []

    alerts: List[Alert] = []
    for severity in sorted(SEVERITY_RANK, key=SEVERITY_RANK.__getitem__, reverse=True):
        remaining = limit - len(alerts)
        if remaining <= 0:
            break
        rows = execute(
            get_supabase()
            .table(_ALERTS_TABLE)
            .select("*")
            .eq("is_acknowledged", False)
            .eq("severity", severity.value)
            .order("created_at", desc=True)
            .limit(remaining),
            action="list active alerts",
        )
        alerts.extend(_row_to_alert(row) for row in rows)
    return alerts


__all__ = [
    "insert_alert",
    "get_alert",
    "list_alerts_for_lead",
    "find_open_alert",
    "count_open_alerts",
    "acknowledge_alert",
    "list_active_alerts",
]
