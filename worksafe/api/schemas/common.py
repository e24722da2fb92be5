"""Common schemas for the WorkSafe API."""

from typing import Any, Dict
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body returned for workflow errors."""
    error: str = Field(..., description="Machine-readable error code, e.g. ErrNotAuthorized")
    category: str = Field(..., description="configuration, authorization, conflict, validation or lookup")
    detail: str
    context: Dict[str, Any] = {}


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str


# Documented on every workflow router; bodies come from WorkflowError.to_dict()
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 403, 404, 409, 422)
}
