"""Extension workflow.

An extension request re-runs the approval protocol over a reduced role set
(configured per permit type) and, once fully approved, moves the permit's
end time. Any rejection leaves the end time unchanged.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worksafe.core.config import Settings
from worksafe.core.timeutil import as_naive_utc, utcnow
from worksafe.core.approval.states import (
    AggregateStatus,
    ApprovalRole,
    Decision,
    PermitAction,
    PermitStatus,
    TERMINAL_STATES,
)
from worksafe.core.approval.errors import (
    ExtensionInProgressError,
    InvalidWindowError,
    NoApproversConfiguredError,
    NotFoundError,
    ReasonRequiredError,
    TerminalStateError,
)
from worksafe.core.approval.ledger import extension_ledger, permit_ledger
from worksafe.db.models import PermitExtension
from .base import WorkflowBase
from .events import NotificationSink, WorkflowEvent

logger = logging.getLogger(__name__)


class ExtensionWorkflow(WorkflowBase):
    """Requests and decisions on permit end-time extensions."""

    def __init__(
        self,
        db: Session,
        *,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db, sink=sink, settings=settings)
        self.ledger = extension_ledger(db)
        self.permit_ledger = permit_ledger(db)

    def request_extension(
        self,
        permit_id: UUID,
        requester_id: UUID,
        new_end_time: datetime,
        reason: Optional[str],
    ) -> PermitExtension:
        """
        Ask for a permit's end time to be moved.

        Approvers are the permit's own bound approvers for the extension
        roles configured for its permit type.

        Raises:
            TerminalStateError: If the permit is rejected or closed
            ExtensionInProgressError: If another request is still pending
            InvalidStateError: Unless the permit is active, extended or had
                its last extension rejected
            ReasonRequiredError: If no reason is given
            InvalidWindowError: If the new end is not after the current end
            NoApproversConfiguredError: If none of the extension roles is bound
        """
        new_end_time = as_naive_utc(new_end_time)

        with self._unit_of_work():
            permit = self._lock_permit(permit_id)
            if PermitStatus(permit.status) in TERMINAL_STATES:
                raise TerminalStateError(
                    f"Permit {permit.serial} is {permit.status}", permit_id=permit.id
                )

            open_request = self._open_extension(permit.id)
            if open_request is not None:
                raise ExtensionInProgressError(
                    f"Permit {permit.serial} already has a pending extension request",
                    permit_id=permit.id,
                    extension_id=open_request.id,
                )

            machine = self._machine(permit)
            machine.check(PermitAction.REQUEST_EXTENSION, user_id=requester_id)

            if reason is None or not reason.strip():
                raise ReasonRequiredError("An extension request requires a reason", permit_id=permit.id)
            if new_end_time <= permit.end_time:
                raise InvalidWindowError(
                    "The new end time must be after the permit's current end time",
                    permit_id=permit.id,
                    end_time=permit.end_time,
                    new_end_time=new_end_time,
                )

            approvers = self._extension_approvers(permit)

            extension = PermitExtension(
                permit_id=permit.id,
                requested_by=requester_id,
                reason=reason,
                original_end_time=permit.end_time,
                new_end_time=new_end_time,
                status=AggregateStatus.PENDING_APPROVAL.value,
            )
            self.db.add(extension)
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise ExtensionInProgressError(
                    f"Permit {permit.serial} already has a pending extension request",
                    permit_id=permit.id,
                ) from exc

            self.ledger.seed(extension.id, approvers)
            machine.transition(
                PermitAction.REQUEST_EXTENSION,
                user_id=requester_id,
                comment=reason,
                extra_data={"extension_id": str(extension.id), "new_end_time": new_end_time.isoformat()},
            )
            self._apply(permit, machine)

        logger.info(f"Extension requested for permit {permit.serial} until {new_end_time.isoformat()}")

        self._emit(
            WorkflowEvent(
                event_type="extension_requested",
                permit_id=permit.id,
                extension_id=extension.id,
                role=role.value,
                recipient_ids=[user_id],
                data={"serial": permit.serial, "new_end_time": new_end_time, "reason": reason},
            )
            for role, user_id in approvers
        )
        return extension

    def _extension_approvers(self, permit) -> List[tuple]:
        roles = set(self.settings.extension_roles_for(permit.permit_type))
        approvers = [
            (ApprovalRole(r.role), r.approver_id)
            for r in self.permit_ledger.records_for(permit.id)
            if ApprovalRole(r.role) in roles
        ]
        if not approvers:
            raise NoApproversConfiguredError(
                f"Permit {permit.serial} has no bound approvers for "
                f"{', '.join(sorted(role.value for role in roles))}",
                permit_id=permit.id,
            )
        return approvers

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve_extension(
        self,
        extension_id: UUID,
        user_id: UUID,
        signature: Optional[str],
        remarks: Optional[str] = None,
    ) -> PermitExtension:
        return self._decide(extension_id, user_id, Decision.APPROVED, signature=signature, remarks=remarks)

    def reject_extension(
        self,
        extension_id: UUID,
        user_id: UUID,
        reason: Optional[str],
        remarks: Optional[str] = None,
    ) -> PermitExtension:
        return self._decide(extension_id, user_id, Decision.REJECTED, reason=reason, remarks=remarks)

    def _decide(
        self,
        extension_id: UUID,
        user_id: UUID,
        decision: Decision,
        *,
        signature: Optional[str] = None,
        reason: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> PermitExtension:
        with self._unit_of_work():
            extension = self.get_extension(extension_id)
            role = self.ledger.role_for(extension_id, user_id)

            outcome = self.ledger.record_decision(
                extension_id, role, decision, user_id,
                signature=signature, reason=reason, remarks=remarks,
            )
            extension = outcome.parent

            permit = self._lock_permit(extension.permit_id)
            if PermitStatus(permit.status) in TERMINAL_STATES:
                raise TerminalStateError(
                    f"Permit {permit.serial} is {permit.status}",
                    permit_id=permit.id,
                    extension_id=extension.id,
                )

            if outcome.aggregate != AggregateStatus.PENDING_APPROVAL:
                self._resolve(extension, permit, outcome.aggregate, user_id, reason)

        events = [
            WorkflowEvent(
                event_type="extension_decision",
                permit_id=permit.id,
                extension_id=extension.id,
                role=role,
                decision=decision,
                recipient_ids=[extension.requested_by],
                data={"serial": permit.serial, "reason": reason},
            )
        ]
        if outcome.aggregate != AggregateStatus.PENDING_APPROVAL:
            events.append(
                WorkflowEvent(
                    event_type=f"extension_{outcome.aggregate.value}",
                    permit_id=permit.id,
                    extension_id=extension.id,
                    recipient_ids=[extension.requested_by],
                    data={"serial": permit.serial, "end_time": permit.end_time},
                )
            )
        self._emit(events)
        return extension

    def _resolve(self, extension, permit, aggregate: AggregateStatus, user_id, reason) -> None:
        """Apply a settled extension to its permit."""
        extension.status = aggregate.value
        extension.resolved_at = utcnow()

        machine = self._machine(permit)
        extra = {"extension_id": str(extension.id)}
        if aggregate == AggregateStatus.APPROVED:
            machine.transition(PermitAction.GRANT_EXTENSION, user_id=user_id, extra_data=extra)
            permit.end_time = extension.new_end_time
            # Reminders are due again for the new end time
            permit.end_reminder_sent_at = None
        else:
            machine.transition(PermitAction.DENY_EXTENSION, user_id=user_id, comment=reason, extra_data=extra)
        self._apply(permit, machine)

        logger.info(f"Extension {extension.id} for permit {permit.serial} {aggregate.value}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_extension(self, extension_id: UUID) -> PermitExtension:
        extension = self.db.get(PermitExtension, extension_id)
        if extension is None:
            raise NotFoundError(f"Extension {extension_id} not found", extension_id=extension_id)
        return extension

    def list_pending_extensions_for(self, user_id: UUID) -> List[PermitExtension]:
        ids = self.ledger.pending_for(user_id)
        if not ids:
            return []
        return self.db.query(PermitExtension).filter(
            PermitExtension.id.in_(ids),
            PermitExtension.status == AggregateStatus.PENDING_APPROVAL.value,
        ).order_by(PermitExtension.created_at.asc()).all()

    def list_decided_extensions_for(self, user_id: UUID, outcome) -> List[PermitExtension]:
        ids = self.ledger.decided_for(user_id, outcome)
        if not ids:
            return []
        by_id = {e.id: e for e in self.db.query(PermitExtension).filter(PermitExtension.id.in_(ids)).all()}
        return [by_id[i] for i in ids if i in by_id]
