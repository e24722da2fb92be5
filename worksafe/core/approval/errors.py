"""Errors raised by the permit approval engine.

Every error carries a stable code, a category and enough context (permit,
extension, role) for the caller to act on it. Nothing here is retried by
the engine.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    AUTHORIZATION = "authorization"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    LOOKUP = "lookup"


class WorkflowError(Exception):
    """Base class for permit workflow failures."""

    code = "ErrWorkflow"
    category = ErrorCategory.VALIDATION
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        permit_id: Optional[Any] = None,
        extension_id: Optional[Any] = None,
        role: Optional[Any] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.permit_id = permit_id
        self.extension_id = extension_id
        self.role = role
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Error body returned by the API."""
        context = {
            "permit_id": self.permit_id,
            "extension_id": self.extension_id,
            "role": self.role,
            **self.context,
        }
        return {
            "error": self.code,
            "category": self.category.value,
            "detail": self.message,
            "context": {k: _plain(v) for k, v in context.items() if v is not None},
        }


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)


class NoApproversConfiguredError(WorkflowError):
    code = "ErrNoApproversConfigured"
    category = ErrorCategory.CONFIGURATION
    status_code = 422


class NotAuthorizedError(WorkflowError):
    code = "ErrNotAuthorized"
    category = ErrorCategory.AUTHORIZATION
    status_code = 403


class AlreadyDecidedError(WorkflowError):
    code = "ErrAlreadyDecided"
    category = ErrorCategory.CONFLICT
    status_code = 409


class TerminalStateError(WorkflowError):
    code = "ErrTerminalState"
    category = ErrorCategory.CONFLICT
    status_code = 409


class ExtensionInProgressError(WorkflowError):
    code = "ErrExtensionInProgress"
    category = ErrorCategory.CONFLICT
    status_code = 409


class InvalidStateError(WorkflowError):
    """An action is not allowed from the permit's current status."""

    code = "ErrInvalidState"
    category = ErrorCategory.CONFLICT
    status_code = 409


class ReasonRequiredError(WorkflowError):
    code = "ErrReasonRequired"
    status_code = 400


class SignatureRequiredError(WorkflowError):
    code = "ErrSignatureRequired"
    status_code = 400


class InvalidWindowError(WorkflowError):
    code = "ErrInvalidWindow"
    status_code = 422


class OutsideWorkWindowError(WorkflowError):
    code = "ErrOutsideWorkWindow"
    status_code = 422


class ChecklistIncompleteError(WorkflowError):
    code = "ErrChecklistIncomplete"
    status_code = 400


class NotFoundError(WorkflowError):
    code = "ErrNotFound"
    category = ErrorCategory.LOOKUP
    status_code = 404


class SerialAllocationError(WorkflowError):
    """Concurrent creations kept taking the next serial number."""

    code = "ErrSerialConflict"
    category = ErrorCategory.CONFLICT
    status_code = 409
