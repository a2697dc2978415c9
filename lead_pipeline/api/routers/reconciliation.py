"""
Reconciliation API Endpoint.

Accepts already-decoded batch records (one field map per source row) and
returns the reconciliation report. File parsing happens upstream.
"""

from fastapi import APIRouter, Depends

from lead_pipeline.api.dependencies import get_actor, require_role
from lead_pipeline.api.models import ReconciliationRequest, ReconciliationResponse
from lead_pipeline.domain.actor import Actor, ActorRole
from lead_pipeline.services.reconciliation_service import reconcile

router = APIRouter()


@router.post(
    "/reconciliation",
    response_model=ReconciliationResponse,
    summary="Reconcile Batch Records",
    description="Merge master-data, kit-return or doctor-approval records into the lead store.",
)
def reconcile_records(request: ReconciliationRequest, actor: Actor = Depends(get_actor)):
    """
    Run one reconciliation batch.

    Bad rows do not fail the request; they are counted in `error_count` and
    the first few are listed in `errors` with their row numbers.
    """
    require_role(actor, (ActorRole.ADMIN,))
    report = reconcile(request.records, request.kind, first_row_number=request.first_row_number)
    return ReconciliationResponse.model_validate(report)
