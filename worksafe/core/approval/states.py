"""Permit approval roles, decision states and lifecycle transitions.

Permit Lifecycle Diagram:

    ┌───────────┐
    │ INITIATED │ ← Created, approval records seeded
    └─────┬─────┘
          │ (derived from approval records)
    ┌─────▼────────────┐     ┌──────────┐
    │ PENDING_APPROVAL │────►│ REJECTED │ (any role rejects)
    └─────┬────────────┘     └──────────┘
          │ (all roles approve)
    ┌─────▼────┐
    │ APPROVED │
    └─────┬────┘
          │ final_submit (creator)
    ┌─────▼──────────┐
    │ READY_TO_START │
    └─────┬──────────┘
          │ start (creator, within work window)
    ┌─────▼──┐       ┌─────────────────────┐
    │ ACTIVE │──────►│ EXTENSION_REQUESTED │
    └─────┬──┘       └─────┬───────────────┘
          │                ├──────────────┐
          │          ┌─────▼────┐  ┌──────▼─────────────┐
          │          │ EXTENDED │  │ EXTENSION_REJECTED │
          │          └──────────┘  └────────────────────┘
          │   (both may request another extension)
    ┌─────▼──┐
    │ CLOSED │
    └────────┘

REJECTED and CLOSED are terminal. Running permits past their end time are
closed by the expiry job.
"""

from enum import Enum
from typing import Set, Dict, Optional, NamedTuple


class ApprovalRole(str, Enum):
    """Fixed set of approval responsibilities bound per site."""

    AREA_MANAGER = "area_manager"
    SAFETY_OFFICER = "safety_officer"
    SITE_LEADER = "site_leader"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS: Dict[ApprovalRole, str] = {
    ApprovalRole.AREA_MANAGER: "Area Manager",
    ApprovalRole.SAFETY_OFFICER: "Safety Officer",
    ApprovalRole.SITE_LEADER: "Site Leader",
}

# Resolution and listing order for roles
ROLE_ORDER: tuple[ApprovalRole, ...] = (
    ApprovalRole.AREA_MANAGER,
    ApprovalRole.SAFETY_OFFICER,
    ApprovalRole.SITE_LEADER,
)


def role_sort_key(role) -> int:
    return ROLE_ORDER.index(ApprovalRole(role))


class PermitType(str, Enum):
    """Kinds of hazardous work a permit can authorize."""

    GENERAL = "general"
    HOT_WORK = "hot_work"
    ELECTRICAL = "electrical"
    HEIGHT = "height"
    CONFINED_SPACE = "confined_space"


class Decision(str, Enum):
    """Decision state of a single approval record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AggregateStatus(str, Enum):
    """Status derived from a full approval record set.

    Also the stored status of an extension request.
    """

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class PermitStatus(str, Enum):
    """Lifecycle states of a permit."""

    # Approval phase
    INITIATED = "initiated"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

    # Execution phase
    READY_TO_START = "ready_to_start"
    ACTIVE = "active"
    EXTENSION_REQUESTED = "extension_requested"
    EXTENDED = "extended"
    EXTENSION_REJECTED = "extension_rejected"

    # Terminal
    CLOSED = "closed"


class PermitAction(str, Enum):
    """Explicit actions that move a permit through its lifecycle."""

    FINAL_SUBMIT = "final_submit"              # APPROVED → READY_TO_START
    START = "start"                            # APPROVED/READY_TO_START → ACTIVE (creator)
    REQUEST_EXTENSION = "request_extension"    # ACTIVE/EXTENDED/EXTENSION_REJECTED → EXTENSION_REQUESTED
    GRANT_EXTENSION = "grant_extension"        # EXTENSION_REQUESTED → EXTENDED
    DENY_EXTENSION = "deny_extension"          # EXTENSION_REQUESTED → EXTENSION_REJECTED
    CLOSE = "close"                            # any execution state → CLOSED


# Actions a user invokes directly; extension outcomes follow from decisions
MANUAL_ACTIONS: tuple[PermitAction, ...] = (
    PermitAction.FINAL_SUBMIT,
    PermitAction.START,
    PermitAction.REQUEST_EXTENSION,
    PermitAction.CLOSE,
)


class TransitionRule(NamedTuple):
    """Defines a valid lifecycle transition."""
    from_state: PermitStatus
    to_state: PermitStatus
    action: PermitAction
    creator_only: bool = False


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(PermitStatus.APPROVED, PermitStatus.READY_TO_START, PermitAction.FINAL_SUBMIT, creator_only=True),

    TransitionRule(PermitStatus.APPROVED, PermitStatus.ACTIVE, PermitAction.START, creator_only=True),
    TransitionRule(PermitStatus.READY_TO_START, PermitStatus.ACTIVE, PermitAction.START, creator_only=True),

    TransitionRule(PermitStatus.ACTIVE, PermitStatus.EXTENSION_REQUESTED, PermitAction.REQUEST_EXTENSION),
    TransitionRule(PermitStatus.EXTENDED, PermitStatus.EXTENSION_REQUESTED, PermitAction.REQUEST_EXTENSION),
    TransitionRule(PermitStatus.EXTENSION_REJECTED, PermitStatus.EXTENSION_REQUESTED, PermitAction.REQUEST_EXTENSION),

    TransitionRule(PermitStatus.EXTENSION_REQUESTED, PermitStatus.EXTENDED, PermitAction.GRANT_EXTENSION),
    TransitionRule(PermitStatus.EXTENSION_REQUESTED, PermitStatus.EXTENSION_REJECTED, PermitAction.DENY_EXTENSION),

    TransitionRule(PermitStatus.READY_TO_START, PermitStatus.CLOSED, PermitAction.CLOSE),
    TransitionRule(PermitStatus.ACTIVE, PermitStatus.CLOSED, PermitAction.CLOSE),
    TransitionRule(PermitStatus.EXTENSION_REQUESTED, PermitStatus.CLOSED, PermitAction.CLOSE),
    TransitionRule(PermitStatus.EXTENDED, PermitStatus.CLOSED, PermitAction.CLOSE),
    TransitionRule(PermitStatus.EXTENSION_REJECTED, PermitStatus.CLOSED, PermitAction.CLOSE),
]

# Build lookup tables for efficient access
VALID_TRANSITIONS: Dict[PermitStatus, Set[PermitAction]] = {}
TRANSITION_TARGETS: Dict[tuple[PermitStatus, PermitAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_state, rule.action)] = rule


# No decisions or actions are accepted once here
TERMINAL_STATES: Set[PermitStatus] = {
    PermitStatus.REJECTED,
    PermitStatus.CLOSED,
}

# Statuses whose value is derived from the approval records
DECISION_STATES: Set[PermitStatus] = {
    PermitStatus.INITIATED,
    PermitStatus.PENDING_APPROVAL,
}

APPROVAL_PHASE_STATES: Set[PermitStatus] = {
    PermitStatus.INITIATED,
    PermitStatus.PENDING_APPROVAL,
    PermitStatus.APPROVED,
    PermitStatus.REJECTED,
}

# Work is (or may be) underway; the approval set must be fully approved
EXECUTION_STATES: Set[PermitStatus] = {
    PermitStatus.READY_TO_START,
    PermitStatus.ACTIVE,
    PermitStatus.EXTENSION_REQUESTED,
    PermitStatus.EXTENDED,
    PermitStatus.EXTENSION_REJECTED,
    PermitStatus.CLOSED,
}

# Running permits closed by the expiry job once past their end time.
# A permit with an extension request in flight waits for the decision.
EXPIRABLE_STATES: Set[PermitStatus] = {
    PermitStatus.ACTIVE,
    PermitStatus.EXTENDED,
    PermitStatus.EXTENSION_REJECTED,
}

# Stored on an extension request that was still pending when its permit closed
EXTENSION_CANCELLED = "cancelled"


# Maps a derived aggregate onto the permit status it settles to
AGGREGATE_TO_PERMIT_STATUS: Dict[AggregateStatus, PermitStatus] = {
    AggregateStatus.PENDING_APPROVAL: PermitStatus.PENDING_APPROVAL,
    AggregateStatus.APPROVED: PermitStatus.APPROVED,
    AggregateStatus.REJECTED: PermitStatus.REJECTED,
}


def can_transition(from_state: PermitStatus, action: PermitAction) -> bool:
    """Check if an action is valid from the given state."""
    return action in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(from_state: PermitStatus, action: PermitAction) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, action))


def get_target_state(from_state: PermitStatus, action: PermitAction) -> Optional[PermitStatus]:
    """Get the target state for an action."""
    rule = get_transition_rule(from_state, action)
    return rule.to_state if rule else None
