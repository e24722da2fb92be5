"""Permit approval API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from worksafe.api.deps import get_current_user, get_permit_workflow
from worksafe.api.routers.permits import permit_response
from worksafe.api.schemas.common import ERROR_RESPONSES
from worksafe.api.schemas.permits import (
    ApproveAction,
    PermitListResponse,
    PermitResponse,
    PermitSummary,
    RejectAction,
)
from worksafe.core.approval.states import Decision
from worksafe.core.permits import PermitWorkflow
from worksafe.db.models import User

router = APIRouter(prefix="/approvals", tags=["approvals"], responses=ERROR_RESPONSES)


@router.get("/pending", response_model=PermitListResponse)
def list_pending_approvals(
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """List permits awaiting the current user's decision."""
    permits = workflow.list_pending_for(current_user.id)
    return PermitListResponse(
        items=[PermitSummary.model_validate(p) for p in permits],
        total=len(permits),
    )


@router.get("/decided", response_model=PermitListResponse)
def list_decided_approvals(
    outcome: Decision = Query(Decision.APPROVED),
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """List permits the current user approved or rejected."""
    permits = workflow.list_decided_for(current_user.id, outcome)
    return PermitListResponse(
        items=[PermitSummary.model_validate(p) for p in permits],
        total=len(permits),
    )


@router.post("/{permit_id}/approve", response_model=PermitResponse)
def approve_permit(
    permit_id: UUID,
    action: ApproveAction,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Approve a permit as the current user's bound role."""
    permit = workflow.approve(permit_id, current_user.id, action.signature, remarks=action.remarks)
    return permit_response(permit, workflow, current_user)


@router.post("/{permit_id}/reject", response_model=PermitResponse)
def reject_permit(
    permit_id: UUID,
    action: RejectAction,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Reject a permit. A reason is required."""
    permit = workflow.reject(permit_id, current_user.id, action.reason, remarks=action.remarks)
    return permit_response(permit, workflow, current_user)
