"""Request and response schemas for permits, approvals and extensions."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from worksafe.core.approval.states import Decision, PermitAction, PermitType


# Requests
class PermitCreate(BaseModel):
    site_id: UUID
    permit_type: PermitType
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# Signature and reason stay optional here; the workflow reports them missing
class ApproveAction(BaseModel):
    signature: Optional[str] = None
    remarks: Optional[str] = None


class RejectAction(BaseModel):
    reason: Optional[str] = None
    remarks: Optional[str] = None


class CloseAction(BaseModel):
    housekeeping_done: bool = False
    tools_removed: bool = False
    locks_removed: bool = False
    area_restored: bool = False
    remarks: Optional[str] = None


class ExtensionCreate(BaseModel):
    new_end_time: datetime
    reason: Optional[str] = None


# Responses
class ApprovalRecordResponse(BaseModel):
    id: UUID
    role: str
    approver_id: UUID
    state: Decision
    decided_at: Optional[datetime]
    signature: Optional[str]
    reason: Optional[str]
    remarks: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ExtensionResponse(BaseModel):
    id: UUID
    permit_id: UUID
    requested_by: UUID
    reason: str
    original_end_time: datetime
    new_end_time: datetime
    status: str
    resolved_at: Optional[datetime]
    created_at: datetime
    approvals: List[ApprovalRecordResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PermitSummary(BaseModel):
    id: UUID
    serial: str
    site_id: UUID
    permit_type: str
    start_time: datetime
    end_time: datetime
    status: str
    created_by: UUID
    description: Optional[str]
    location: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermitResponse(PermitSummary):
    details: Dict[str, Any]
    started_at: Optional[datetime]
    closed_at: Optional[datetime]
    approvals: List[ApprovalRecordResponse] = []
    extensions: List[ExtensionResponse] = []
    # For the requesting user; set by the router
    available_actions: List[PermitAction] = []


class PermitListResponse(BaseModel):
    items: List[PermitSummary]
    total: int


class ExtensionListResponse(BaseModel):
    items: List[ExtensionResponse]
    total: int
