"""Permit extension API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from worksafe.api.deps import get_current_user, get_extension_workflow
from worksafe.api.schemas.common import ERROR_RESPONSES
from worksafe.api.schemas.permits import (
    ApproveAction,
    ExtensionListResponse,
    ExtensionResponse,
    RejectAction,
)
from worksafe.core.approval.states import Decision
from worksafe.core.permits import ExtensionWorkflow
from worksafe.db.models import User

router = APIRouter(prefix="/extensions", tags=["extensions"], responses=ERROR_RESPONSES)


def _list(extensions) -> ExtensionListResponse:
    return ExtensionListResponse(
        items=[ExtensionResponse.model_validate(e) for e in extensions],
        total=len(extensions),
    )


@router.get("/pending", response_model=ExtensionListResponse)
def list_pending_extensions(
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """List extension requests awaiting the current user's decision."""
    return _list(workflow.list_pending_extensions_for(current_user.id))


@router.get("/decided", response_model=ExtensionListResponse)
def list_decided_extensions(
    outcome: Decision = Query(Decision.APPROVED),
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """List extension requests the current user approved or rejected."""
    return _list(workflow.list_decided_extensions_for(current_user.id, outcome))


@router.get("/{extension_id}", response_model=ExtensionResponse)
def get_extension(
    extension_id: UUID,
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """Get an extension request with its approval records."""
    return ExtensionResponse.model_validate(workflow.get_extension(extension_id))


@router.post("/{extension_id}/approve", response_model=ExtensionResponse)
def approve_extension(
    extension_id: UUID,
    action: ApproveAction,
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """Approve an extension request as the current user's bound role."""
    extension = workflow.approve_extension(
        extension_id, current_user.id, action.signature, remarks=action.remarks
    )
    return ExtensionResponse.model_validate(extension)


@router.post("/{extension_id}/reject", response_model=ExtensionResponse)
def reject_extension(
    extension_id: UUID,
    action: RejectAction,
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """Reject an extension request. A reason is required."""
    extension = workflow.reject_extension(
        extension_id, current_user.id, action.reason, remarks=action.remarks
    )
    return ExtensionResponse.model_validate(extension)
