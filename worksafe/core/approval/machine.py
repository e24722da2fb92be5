"""Permit lifecycle state machine.

Validates explicit lifecycle actions against the transition table and records
the transition history.
"""

import logging
import uuid
from typing import Optional, Dict, Any
from uuid import UUID

from worksafe.core.timeutil import utcnow
from .states import (
    AggregateStatus,
    PermitAction,
    PermitStatus,
    AGGREGATE_TO_PERMIT_STATUS,
    DECISION_STATES,
    MANUAL_ACTIONS,
    TERMINAL_STATES,
    can_transition,
    get_transition_rule,
)
from .errors import InvalidStateError, NotAuthorizedError, TerminalStateError

logger = logging.getLogger(__name__)


class PermitStateMachine:
    """
    State machine for a single permit.

    Explicit actions (final submit, start, extensions, close) go through
    ``transition``. Status changes driven by approval decisions go through
    ``settle``, which only applies while the permit is still in a decision
    state.
    """

    def __init__(
        self,
        permit_id: UUID,
        current_state: PermitStatus,
        *,
        creator_id: Optional[UUID] = None,
    ):
        """
        Args:
            permit_id: ID of the permit
            current_state: Current lifecycle status
            creator_id: User who created the permit, for creator-only actions
        """
        self.permit_id = permit_id
        self._state = PermitStatus(current_state)
        self.creator_id = creator_id
        self._transition_history: list[Dict[str, Any]] = []

    @property
    def state(self) -> PermitStatus:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_perform(self, action: PermitAction, user_id: Optional[UUID] = None) -> bool:
        """Check if an action can be performed from the current state."""
        rule = get_transition_rule(self._state, action)
        if rule is None:
            return False
        if rule.creator_only and user_id != self.creator_id:
            return False
        return True

    def get_available_actions(self, user_id: Optional[UUID] = None) -> list[PermitAction]:
        """Manual actions the user may take now, ignoring time and checklist checks."""
        return [action for action in MANUAL_ACTIONS if self.can_perform(action, user_id)]

    def transition(
        self,
        action: PermitAction,
        *,
        user_id: Optional[UUID] = None,
        comment: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> PermitStatus:
        """
        Perform a lifecycle action.

        Returns:
            The new status

        Raises:
            TerminalStateError: If the permit is rejected or closed
            InvalidStateError: If the action is not allowed from this status
            NotAuthorizedError: If a creator-only action is attempted by someone else
        """
        self.check(action, user_id=user_id)
        rule = get_transition_rule(self._state, action)

        self._record(self._state, rule.to_state, action.value, user_id, comment, extra_data)
        logger.debug(f"Permit {self.permit_id}: {self._state.value} -> {rule.to_state.value} ({action.value})")
        self._state = rule.to_state
        return self._state

    def check(self, action: PermitAction, *, user_id: Optional[UUID] = None) -> None:
        """
        Validate an action without performing it.

        Raises:
            TerminalStateError: If the permit is rejected or closed
            InvalidStateError: If the action is not allowed from this status
            NotAuthorizedError: If a creator-only action is attempted by someone else
        """
        if self.is_terminal:
            raise TerminalStateError(
                f"Permit is {self._state.value}; {action.value} is not accepted",
                permit_id=self.permit_id,
                status=self._state,
            )

        if not can_transition(self._state, action):
            raise InvalidStateError(
                f"Cannot {action.value} a permit in status {self._state.value}",
                permit_id=self.permit_id,
                status=self._state,
                action=action,
            )

        rule = get_transition_rule(self._state, action)
        if rule.creator_only and user_id != self.creator_id:
            raise NotAuthorizedError(
                f"Only the permit creator may {action.value}",
                permit_id=self.permit_id,
            )

    def settle(
        self,
        aggregate: AggregateStatus,
        *,
        user_id: Optional[UUID] = None,
        comment: Optional[str] = None,
    ) -> PermitStatus:
        """
        Move the permit to the status derived from its approval records.

        Only applies while the permit is in a decision state; otherwise the
        current status is returned unchanged.
        """
        if self._state not in DECISION_STATES:
            return self._state

        target = AGGREGATE_TO_PERMIT_STATUS[AggregateStatus(aggregate)]
        if target != self._state:
            self._record(self._state, target, "decision", user_id, comment, None)
            self._state = target
        return self._state

    def get_history(self) -> list[Dict[str, Any]]:
        """Get the transitions performed through this machine."""
        return self._transition_history.copy()

    def _record(self, from_state, to_state, action, user_id, comment, extra_data) -> Dict[str, Any]:
        record = {
            "id": uuid.uuid4(),
            "permit_id": self.permit_id,
            "from_state": from_state.value,
            "to_state": to_state.value,
            "action": action,
            "user_id": user_id,
            "comment": comment,
            "extra_data": extra_data or {},
            "timestamp": utcnow(),
        }
        self._transition_history.append(record)
        return record

