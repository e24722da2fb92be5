"""Aggregate status derivation.

The stored status of a permit's approval phase (and of an extension request)
is always recomputable from its approval record set with ``derive_aggregate``.
"""

from typing import Iterable, Optional

from .states import (
    AggregateStatus,
    Decision,
    PermitStatus,
    APPROVAL_PHASE_STATES,
    EXECUTION_STATES,
)


def derive_aggregate(decisions: Iterable) -> AggregateStatus:
    """
    Derive the aggregate status of an approval record set.

    Any rejection wins regardless of pending records; otherwise the set is
    approved once every record is approved.

    Args:
        decisions: Decision values (or strings) of every record in the set

    Raises:
        ValueError: If the set is empty
    """
    values = [Decision(d) for d in decisions]
    if not values:
        raise ValueError("Cannot derive a status from an empty approval set")

    if any(d == Decision.REJECTED for d in values):
        return AggregateStatus.REJECTED
    if all(d == Decision.APPROVED for d in values):
        return AggregateStatus.APPROVED
    return AggregateStatus.PENDING_APPROVAL


def check_permit_consistency(status, decisions: Iterable) -> Optional[str]:
    """
    Compare a stored permit status against its approval records.

    Returns:
        A description of the drift, or None when the status is consistent
    """
    status = PermitStatus(status)
    values = [Decision(d) for d in decisions]
    if not values:
        return "permit has no approval records"

    derived = derive_aggregate(values)

    if status == PermitStatus.INITIATED:
        if any(d != Decision.PENDING for d in values):
            return "initiated permit has decided approval records"
        return None

    if status in APPROVAL_PHASE_STATES:
        if status.value != derived.value:
            return f"stored status {status.value} but records derive {derived.value}"
        return None

    if status in EXECUTION_STATES and derived != AggregateStatus.APPROVED:
        return f"permit is {status.value} but records derive {derived.value}"

    return None
