"""Permit lifecycle API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from worksafe.api.deps import get_current_user, get_permit_workflow, get_extension_workflow
from worksafe.api.schemas.common import ERROR_RESPONSES
from worksafe.api.schemas.permits import (
    CloseAction,
    ExtensionCreate,
    ExtensionResponse,
    PermitCreate,
    PermitListResponse,
    PermitResponse,
    PermitSummary,
)
from worksafe.core.approval.states import PermitStatus, role_sort_key
from worksafe.core.permits import ExtensionWorkflow, PermitWorkflow, WorkWindow
from worksafe.db.models import User

router = APIRouter(prefix="/permits", tags=["permits"], responses=ERROR_RESPONSES)


def permit_response(permit, workflow: PermitWorkflow, user: User) -> PermitResponse:
    response = PermitResponse.model_validate(permit)
    response.available_actions = workflow.available_actions(permit, user.id)
    response.approvals.sort(key=lambda a: role_sort_key(a.role))
    return response


@router.post("", response_model=PermitResponse, status_code=status.HTTP_201_CREATED)
def create_permit(
    body: PermitCreate,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Create a permit and request approval from the site's approvers."""
    details = dict(body.details)
    details["description"] = body.description
    details["location"] = body.location
    permit = workflow.create_permit(
        body.site_id,
        body.permit_type,
        WorkWindow(body.start_time, body.end_time),
        current_user.id,
        details,
    )
    return permit_response(permit, workflow, current_user)


@router.get("/mine", response_model=PermitListResponse)
def list_my_permits(
    status_filter: Optional[PermitStatus] = Query(None, alias="status"),
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """List permits created by the current user."""
    permits = workflow.list_created_by(current_user.id, status_filter)
    return PermitListResponse(
        items=[PermitSummary.model_validate(p) for p in permits],
        total=len(permits),
    )


@router.get("/{permit_id}", response_model=PermitResponse)
def get_permit(
    permit_id: UUID,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Get a permit with its approval records and extension requests."""
    return permit_response(workflow.get_permit(permit_id), workflow, current_user)


@router.post("/{permit_id}/final-submit", response_model=PermitResponse)
def final_submit(
    permit_id: UUID,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Confirm an approved permit is ready to start (creator only)."""
    return permit_response(workflow.final_submit(permit_id, current_user.id), workflow, current_user)


@router.post("/{permit_id}/start", response_model=PermitResponse)
def start_permit(
    permit_id: UUID,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Start work (creator only). The work window is checked against the server clock."""
    permit = workflow.start_permit(permit_id, current_user.id)
    return permit_response(permit, workflow, current_user)


@router.post("/{permit_id}/close", response_model=PermitResponse)
def close_permit(
    permit_id: UUID,
    body: CloseAction,
    workflow: PermitWorkflow = Depends(get_permit_workflow),
    current_user: User = Depends(get_current_user),
):
    """Close a permit with a completed closure checklist."""
    checklist = body.model_dump(exclude={"remarks"})
    permit = workflow.close_permit(permit_id, current_user.id, checklist, remarks=body.remarks)
    return permit_response(permit, workflow, current_user)


@router.post(
    "/{permit_id}/extensions",
    response_model=ExtensionResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_extension(
    permit_id: UUID,
    body: ExtensionCreate,
    workflow: ExtensionWorkflow = Depends(get_extension_workflow),
    current_user: User = Depends(get_current_user),
):
    """Request a later end time for an active permit."""
    extension = workflow.request_extension(permit_id, current_user.id, body.new_end_time, body.reason)
    return ExtensionResponse.model_validate(extension)
