"""
Alerts API Endpoints.

Admin overview of open integrity alerts, acknowledgement and the bulk
duplicate scan.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from lead_pipeline.api.dependencies import get_actor, require_role
from lead_pipeline.api.models import AlertListResponse, AlertResponse, BulkCheckResponse
from lead_pipeline.domain.actor import Actor, ActorRole
from lead_pipeline.services import alert_service

router = APIRouter()


@router.get(
    "/alerts",
    response_model=AlertListResponse,
    summary="List Active Alerts",
    description="Unacknowledged alerts, highest severity first, newest first within a severity.",
)
def list_active_alerts(
    limit: int = Query(alert_service.DEFAULT_ACTIVE_ALERT_LIMIT, ge=1, le=500),
):
    alerts = alert_service.list_active_alerts(limit=limit)
    return AlertListResponse(
        alerts=[AlertResponse.model_validate(alert) for alert in alerts],
        total_count=len(alerts),
    )


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertResponse,
    summary="Acknowledge Alert",
)
def acknowledge_alert(alert_id: UUID, actor: Actor = Depends(get_actor)):
    """
    Acknowledge an alert. Acknowledging twice keeps the first acknowledgement.
    """
    require_role(actor, (ActorRole.ADMIN, ActorRole.ADVOCATE))
    return AlertResponse.model_validate(alert_service.acknowledge(alert_id, actor.actor_id))


@router.post(
    "/alerts/bulk-check",
    response_model=BulkCheckResponse,
    summary="Run Bulk Duplicate Check",
)
def run_bulk_duplicate_check(actor: Actor = Depends(get_actor)):
    require_role(actor, (ActorRole.ADMIN,))
    result = alert_service.run_bulk_duplicate_check()
    return BulkCheckResponse(
        checked=result.checked,
        duplicate_groups=result.duplicate_groups,
        alerts_created=result.alerts_created,
    )
