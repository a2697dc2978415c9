"""
Domain: integrity alerts attached to a Lead.

Rules implemented here:
- An alert references one lead and optionally a related lead.
- At most one unacknowledged alert exists per (lead_id, related_lead_id,
  alert_type); the store enforces this with a unique index.
- Acknowledgement records who acknowledged and when, and is one-way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID

from .time import require_optional_utc_timestamp, require_utc_timestamp


class AlertType(str, Enum):
    DUPLICATE = "DUPLICATE"
    COMPLIANCE_ISSUE = "COMPLIANCE_ISSUE"
    DATA_QUALITY = "DATA_QUALITY"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_RANK = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}


@dataclass(frozen=True, slots=True)
class Alert:
    alert_id: UUID
    lead_id: UUID
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    created_at: datetime
    related_lead_id: Optional[UUID] = None
    is_acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("acknowledged_at", self.acknowledged_at)
        if self.is_acknowledged and (self.acknowledged_by is None or self.acknowledged_at is None):
            raise ValueError("acknowledged alerts must record acknowledged_by and acknowledged_at")


__all__ = ["AlertType", "AlertSeverity", "SEVERITY_RANK", "Alert"]
