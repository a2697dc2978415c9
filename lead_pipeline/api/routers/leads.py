"""
Leads API Endpoints.

Intake, reads, reviewer updates and exclusive claims. Typed failures raised
by the services are mapped to HTTP statuses by the handlers in `api.main`.
"""

from datetime import timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from lead_pipeline.api.dependencies import get_actor, require_role
from lead_pipeline.api.models import (
    AlertCheckResponse,
    AlertResponse,
    ClaimResponse,
    DuplicateMarkResponse,
    LeadCreateRequest,
    LeadCreateResponse,
    LeadDetailResponse,
    LeadResponse,
    LeadUpdateRequest,
    LeadUpdateResponse,
    MatchRequest,
    MatchResponse,
)
from lead_pipeline.domain.actor import Actor, ActorRole
from lead_pipeline.services import alert_service, assignment_service, lead_service, status_service
from lead_pipeline.services.assignment_service import ClaimResult
from lead_pipeline.services.identity_matcher import MatchCandidate, find_matches

router = APIRouter()


def _claim_response(result: ClaimResult) -> ClaimResponse:
    return ClaimResponse(
        outcome=result.outcome,
        granted=result.granted,
        owner_id=result.owner_id,
        lead=LeadResponse.model_validate(result.lead),
    )


@router.post(
    "/leads",
    response_model=LeadCreateResponse,
    status_code=201,
    summary="Create Lead",
    description="Direct intake of one lead. The plan identifier must be well formed and unused.",
)
def create_lead(request: LeadCreateRequest, actor: Actor = Depends(get_actor)):
    """
    Create a lead in SUBMITTED status.

    A duplicate check runs after the insert; any alerts it raised are
    returned with the lead.
    """
    result = lead_service.create_lead(lead_service.LeadIntake(**request.model_dump()), actor)
    return LeadCreateResponse(
        lead=LeadResponse.model_validate(result.lead),
        alerts=[AlertResponse.model_validate(alert) for alert in result.alerts],
    )


@router.get(
    "/leads/{lead_id}",
    response_model=LeadDetailResponse,
    summary="Get Lead",
)
def get_lead(
    lead_id: UUID,
    check_duplicates: bool = Query(True, description="Run the duplicate check before reading"),
):
    view = lead_service.get_lead(lead_id, check_duplicates=check_duplicates)
    return LeadDetailResponse(
        lead=LeadResponse.model_validate(view.lead),
        active_alerts=[AlertResponse.model_validate(alert) for alert in view.active_alerts],
    )


@router.patch(
    "/leads/{lead_id}",
    response_model=LeadUpdateResponse,
    summary="Update Lead",
    description="Record a disposition and/or set a status. A disposition always decides the status.",
)
def update_lead(lead_id: UUID, request: LeadUpdateRequest, actor: Actor = Depends(get_actor)):
    """
    Apply a reviewer update.

    When the request carries both a disposition and a status that disagree,
    the disposition wins and the conflict is returned in `warnings`.
    """
    fields = request.model_dump()
    callback = fields["next_callback_at"]
    if callback is not None and callback.tzinfo is not None:
        fields["next_callback_at"] = callback.astimezone(timezone.utc)
    try:
        update = status_service.LeadUpdate(**fields)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="next_callback_at must include a timezone offset",
        )

    result = status_service.update_lead(lead_id, update, actor)
    return LeadUpdateResponse(
        lead=LeadResponse.model_validate(result.lead),
        previous_status=result.previous_status,
        warnings=list(result.warnings),
        alerts=[AlertResponse.model_validate(alert) for alert in result.alerts],
    )


@router.post(
    "/leads/{lead_id}/claim",
    response_model=ClaimResponse,
    summary="Claim Lead For Review",
)
def claim_lead(lead_id: UUID, actor: Actor = Depends(get_actor)):
    """
    Claim an unowned lead for advocate review.

    Returns 200 in every ownership outcome; check `outcome` (CLAIMED,
    ALREADY_OWNED or ALREADY_ASSIGNED with the current `owner_id`).
    """
    require_role(actor, (ActorRole.ADVOCATE, ActorRole.ADMIN))
    return _claim_response(assignment_service.claim(lead_id, actor.actor_id))


@router.post(
    "/leads/{lead_id}/collections-claim",
    response_model=ClaimResponse,
    summary="Claim Lead For Collections",
)
def claim_lead_for_collections(lead_id: UUID, actor: Actor = Depends(get_actor)):
    require_role(actor, (ActorRole.COLLECTIONS, ActorRole.ADMIN))
    return _claim_response(assignment_service.claim_collections(lead_id, actor.actor_id))


@router.post(
    "/leads/{lead_id}/duplicate-check",
    response_model=AlertCheckResponse,
    summary="Run Duplicate Check",
)
def check_duplicates(lead_id: UUID):
    result = alert_service.check_for_duplicate_alert(lead_id)
    return AlertCheckResponse(
        lead_id=result.lead_id,
        is_duplicate=result.is_duplicate,
        created_alerts=[AlertResponse.model_validate(alert) for alert in result.created_alerts],
        active_alerts=[AlertResponse.model_validate(alert) for alert in result.active_alerts],
    )


@router.post(
    "/leads/{lead_id}/mark-duplicate",
    response_model=DuplicateMarkResponse,
    summary="Mark Lead As Duplicate",
)
def mark_duplicate(lead_id: UUID, actor: Actor = Depends(get_actor)):
    require_role(actor, (ActorRole.ADVOCATE, ActorRole.ADMIN))
    result = alert_service.mark_as_duplicate(lead_id, actor.actor_id)
    return DuplicateMarkResponse(
        lead=LeadResponse.model_validate(result.lead),
        acknowledged_alerts=[
            AlertResponse.model_validate(alert) for alert in result.acknowledged_alerts
        ],
    )


@router.post(
    "/leads/match",
    response_model=MatchResponse,
    summary="Match Identity",
    description="Find existing leads for an identity. Read-only; no match returns tier NONE.",
)
def match_identity(request: MatchRequest):
    result = find_matches(
        MatchCandidate(
            mbi=request.mbi,
            first_name=request.first_name,
            last_name=request.last_name,
            phone=request.phone,
            tracking_number=request.tracking_number,
        ),
        include_tracking=request.include_tracking,
    )
    return MatchResponse(tier=result.tier, lead_ids=list(result.lead_ids))
