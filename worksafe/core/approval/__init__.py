"""Permit approval engine: roles, decision ledger and status derivation."""

from .states import (
    ApprovalRole,
    AggregateStatus,
    Decision,
    PermitAction,
    PermitStatus,
    PermitType,
    ROLE_ORDER,
    TERMINAL_STATES,
    can_transition,
)
from .errors import (
    WorkflowError,
    NoApproversConfiguredError,
    NotAuthorizedError,
    AlreadyDecidedError,
    TerminalStateError,
    ExtensionInProgressError,
    InvalidStateError,
    ReasonRequiredError,
    SignatureRequiredError,
    InvalidWindowError,
    OutsideWorkWindowError,
    ChecklistIncompleteError,
    NotFoundError,
    SerialAllocationError,
)
from .derivation import derive_aggregate, check_permit_consistency

__all__ = [
    "ApprovalRole",
    "AggregateStatus",
    "Decision",
    "PermitAction",
    "PermitStatus",
    "PermitType",
    "ROLE_ORDER",
    "TERMINAL_STATES",
    "can_transition",
    "WorkflowError",
    "NoApproversConfiguredError",
    "NotAuthorizedError",
    "AlreadyDecidedError",
    "TerminalStateError",
    "ExtensionInProgressError",
    "InvalidStateError",
    "ReasonRequiredError",
    "SignatureRequiredError",
    "InvalidWindowError",
    "OutsideWorkWindowError",
    "ChecklistIncompleteError",
    "NotFoundError",
    "SerialAllocationError",
    "derive_aggregate",
    "check_permit_consistency",
]
