"""Permit workflow.

Creates permits, records per-role approvals and rejections, and drives the
explicit lifecycle actions (final submit, start, close). Also closes running
permits whose work window has ended.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worksafe.core.config import Settings
from worksafe.core.timeutil import as_naive_utc, utcnow
from worksafe.core.approval.states import (
    AggregateStatus,
    Decision,
    PermitAction,
    PermitStatus,
    PermitType,
    DECISION_STATES,
    EXPIRABLE_STATES,
    EXTENSION_CANCELLED,
)
from worksafe.core.approval.errors import (
    ChecklistIncompleteError,
    InvalidWindowError,
    OutsideWorkWindowError,
    SerialAllocationError,
    WorkflowError,
)
from worksafe.core.approval.derivation import check_permit_consistency
from worksafe.core.approval.ledger import permit_ledger
from worksafe.core.approval.roles import RoleResolver, SiteRoleResolver
from worksafe.db.models import Permit, PermitClosure
from .base import WorkflowBase
from .events import NotificationSink, WorkflowEvent

logger = logging.getLogger(__name__)

CHECKLIST_ITEMS = ("housekeeping_done", "tools_removed", "locks_removed", "area_restored")

SERIAL_ALLOCATION_ATTEMPTS = 5


class WorkWindow(NamedTuple):
    start: datetime
    end: datetime


class PermitWorkflow(WorkflowBase):
    """
    Orchestrates a permit from creation to closure.

    The role resolver is injected; by default approvers are read from the
    site_role_assignments table through the same session.
    """

    def __init__(
        self,
        db: Session,
        resolver: Optional[RoleResolver] = None,
        *,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db, sink=sink, settings=settings)
        self.resolver = resolver or SiteRoleResolver(db)
        self.ledger = permit_ledger(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_permit(
        self,
        site_id: UUID,
        permit_type,
        window,
        creator_id: UUID,
        details: Optional[Dict[str, Any]] = None,
    ) -> Permit:
        """
        Create a permit and seed one pending approval per required role.

        Args:
            site_id: Site the work happens at
            permit_type: PermitType (or its value)
            window: (start, end) of the work
            creator_id: Requesting user
            details: Free-form details; ``description`` and ``location``
                are stored in their own columns

        Raises:
            InvalidWindowError: If the window does not end after it starts
            NotFoundError: If the site does not exist
            NoApproversConfiguredError: If the site has no assigned approvers
            SerialAllocationError: If concurrent creations keep taking the
                next serial number
        """
        start, end = (as_naive_utc(t) for t in window)
        if end <= start:
            raise InvalidWindowError(
                "Permit end time must be after its start time",
                start_time=start, end_time=end,
            )
        permit_type = PermitType(permit_type)
        details = dict(details or {})
        description = details.pop("description", None)
        location = details.pop("location", None)

        approvers = self.resolver.resolve_required_roles(site_id)

        for attempt in range(1, SERIAL_ALLOCATION_ATTEMPTS + 1):
            number = self._next_serial_number()
            try:
                with self._unit_of_work():
                    permit = Permit(
                        serial=self._format_serial(number),
                        serial_number=number,
                        site_id=site_id,
                        permit_type=permit_type.value,
                        start_time=start,
                        end_time=end,
                        status=PermitStatus.INITIATED.value,
                        created_by=creator_id,
                        description=description,
                        location=location,
                        details=details,
                    )
                    self.db.add(permit)
                    self.db.flush()

                    self.ledger.seed(permit.id, approvers)
                    self._record_history(
                        permit,
                        from_status=None,
                        to_status=PermitStatus.INITIATED.value,
                        action="create",
                        user_id=creator_id,
                        extra_data={"approvers": {role.value: str(user) for role, user in approvers}},
                    )
                break
            except IntegrityError:
                if not self._serial_taken(number):
                    raise
                logger.warning(
                    f"Serial number {number} was taken by a concurrent request "
                    f"(attempt {attempt}/{SERIAL_ALLOCATION_ATTEMPTS})"
                )
        else:
            raise SerialAllocationError(
                f"Could not allocate a permit serial after {SERIAL_ALLOCATION_ATTEMPTS} attempts",
                site_id=site_id,
            )

        logger.info(f"Created permit {permit.serial} at site {site_id} with {len(approvers)} approvers")

        self._emit(
            WorkflowEvent(
                event_type="approval_requested",
                permit_id=permit.id,
                role=role.value,
                recipient_ids=[user_id],
                data={"serial": permit.serial, "permit_type": permit.permit_type},
            )
            for role, user_id in approvers
        )
        return permit

    def _next_serial_number(self) -> int:
        current = self.db.query(func.max(Permit.serial_number)).scalar()
        return (current or 0) + 1

    def _serial_taken(self, number: int) -> bool:
        return self.db.query(Permit.id).filter(Permit.serial_number == number).first() is not None

    def _format_serial(self, number: int) -> str:
        return f"{self.settings.permit_serial_prefix}-{number:0{self.settings.permit_serial_width}d}"

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        permit_id: UUID,
        user_id: UUID,
        signature: Optional[str],
        remarks: Optional[str] = None,
    ) -> Permit:
        """Record the user's approval. See ``ApprovalLedger.record_decision`` for errors."""
        return self._decide(permit_id, user_id, Decision.APPROVED, signature=signature, remarks=remarks)

    def reject(
        self,
        permit_id: UUID,
        user_id: UUID,
        reason: Optional[str],
        remarks: Optional[str] = None,
    ) -> Permit:
        """Record the user's rejection. Any rejection rejects the permit."""
        return self._decide(permit_id, user_id, Decision.REJECTED, reason=reason, remarks=remarks)

    def _decide(
        self,
        permit_id: UUID,
        user_id: UUID,
        decision: Decision,
        *,
        signature: Optional[str] = None,
        reason: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Permit:
        with self._unit_of_work():
            self._get_permit(permit_id)
            role = self.ledger.role_for(permit_id, user_id)

            outcome = self.ledger.record_decision(
                permit_id, role, decision, user_id,
                signature=signature, reason=reason, remarks=remarks,
            )
            permit = outcome.parent
            machine = self._machine(permit)
            machine.settle(outcome.aggregate, user_id=user_id, comment=reason)
            self._apply(permit, machine)

        events = [
            WorkflowEvent(
                event_type="permit_decision",
                permit_id=permit.id,
                role=role,
                decision=decision,
                recipient_ids=[permit.created_by],
                data={"serial": permit.serial, "reason": reason},
            )
        ]
        if outcome.aggregate != AggregateStatus.PENDING_APPROVAL:
            events.append(
                WorkflowEvent(
                    event_type=f"permit_{outcome.aggregate.value}",
                    permit_id=permit.id,
                    recipient_ids=[permit.created_by],
                    data={"serial": permit.serial},
                )
            )
        self._emit(events)
        return permit

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    def final_submit(self, permit_id: UUID, user_id: UUID) -> Permit:
        """Creator confirms an approved permit is ready to start."""
        with self._unit_of_work():
            permit = self._lock_permit(permit_id)
            machine = self._machine(permit)
            machine.transition(PermitAction.FINAL_SUBMIT, user_id=user_id)
            self._apply(permit, machine)

        self._emit([
            WorkflowEvent(
                event_type="permit_ready",
                permit_id=permit.id,
                recipient_ids=[permit.created_by],
                data={"serial": permit.serial},
            )
        ])
        return permit

    def start_permit(
        self,
        permit_id: UUID,
        user_id: UUID,
        now: Optional[datetime] = None,
    ) -> Permit:
        """
        Start work on an approved permit (creator only).

        Args:
            permit_id: Permit to start
            user_id: Acting user; must be the permit's creator
            now: Time checked against the work window, defaults to the clock

        Raises:
            InvalidStateError: Unless the permit is approved or ready to start
            NotAuthorizedError: If the user did not create the permit
            OutsideWorkWindowError: If now is outside the permit's work window
        """
        now = as_naive_utc(now) or utcnow()
        with self._unit_of_work():
            permit = self._lock_permit(permit_id)
            machine = self._machine(permit)
            machine.check(PermitAction.START, user_id=user_id)

            if not (permit.start_time <= now <= permit.end_time):
                raise OutsideWorkWindowError(
                    f"Permit {permit.serial} can only start between "
                    f"{permit.start_time.isoformat()} and {permit.end_time.isoformat()}",
                    permit_id=permit.id,
                    now=now,
                )

            machine.transition(PermitAction.START, user_id=user_id)
            self._apply(permit, machine)
            permit.started_at = now

        logger.info(f"Permit {permit.serial} started")
        self._emit([
            WorkflowEvent(
                event_type="permit_started",
                permit_id=permit.id,
                recipient_ids=self._approver_ids(permit),
                data={"serial": permit.serial},
            )
        ])
        return permit

    def close_permit(
        self,
        permit_id: UUID,
        user_id: UUID,
        checklist: Dict[str, bool],
        remarks: Optional[str] = None,
    ) -> Permit:
        """
        Close a permit once the site has been made safe.

        An extension request still awaiting decisions is cancelled.

        Raises:
            InvalidStateError: If the permit has not reached execution
            ChecklistIncompleteError: If any checklist item is not confirmed
        """
        with self._unit_of_work():
            permit = self._lock_permit(permit_id)
            machine = self._machine(permit)
            machine.check(PermitAction.CLOSE, user_id=user_id)

            missing = [item for item in CHECKLIST_ITEMS if not checklist.get(item)]
            if missing:
                raise ChecklistIncompleteError(
                    f"Closure checklist incomplete: {', '.join(missing)}",
                    permit_id=permit.id,
                    missing=missing,
                )

            self.db.add(PermitClosure(
                permit_id=permit.id,
                closed_by=user_id,
                remarks=remarks,
                **{item: True for item in CHECKLIST_ITEMS},
            ))
            self._close(permit, machine, user_id=user_id, comment=remarks)

        logger.info(f"Permit {permit.serial} closed")
        self._emit([
            WorkflowEvent(
                event_type="permit_closed",
                permit_id=permit.id,
                recipient_ids=self._approver_ids(permit),
                data={"serial": permit.serial},
            )
        ])
        return permit

    def close_expired_permits(self, now: Optional[datetime] = None) -> List[Permit]:
        """
        Close running permits whose end time has passed.

        Each permit is closed in its own transaction, recorded as a system
        close in its history, and its creator is notified. A permit that
        changed status since it was selected is skipped.

        Returns:
            The permits closed
        """
        now = as_naive_utc(now) or utcnow()
        candidates = [
            permit_id for (permit_id,) in self.db.query(Permit.id).filter(
                Permit.status.in_([s.value for s in EXPIRABLE_STATES]),
                Permit.end_time < now,
            ).order_by(Permit.end_time.asc()).all()
        ]

        closed = []
        for permit_id in candidates:
            try:
                with self._unit_of_work():
                    permit = self._lock_permit(permit_id)
                    if PermitStatus(permit.status) not in EXPIRABLE_STATES or permit.end_time >= now:
                        continue
                    machine = self._machine(permit)
                    self._close(
                        permit, machine,
                        comment="Work window ended",
                        extra_data={"auto_closed": True, "end_time": permit.end_time.isoformat()},
                        closed_at=now,
                    )
            except WorkflowError as e:
                logger.warning(f"Skipping expiry of permit {permit_id}: {e.message}")
                continue
            closed.append(permit)

        if closed:
            logger.info(f"Auto-closed {len(closed)} expired permits")

        self._emit(
            WorkflowEvent(
                event_type="permit_closed",
                permit_id=permit.id,
                recipient_ids=[permit.created_by],
                data={"serial": permit.serial, "auto_closed": True},
            )
            for permit in closed
        )
        return closed

    def _close(
        self,
        permit: Permit,
        machine,
        *,
        user_id: Optional[UUID] = None,
        comment: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        closed_at: Optional[datetime] = None,
    ) -> None:
        closed_at = closed_at or utcnow()
        extension = self._open_extension(permit.id)
        if extension is not None:
            extension.status = EXTENSION_CANCELLED
            extension.resolved_at = closed_at
            logger.info(f"Cancelled pending extension {extension.id} of permit {permit.serial}")

        machine.transition(PermitAction.CLOSE, user_id=user_id, comment=comment, extra_data=extra_data)
        self._apply(permit, machine)
        permit.closed_at = closed_at

    def _approver_ids(self, permit: Permit) -> List[UUID]:
        return [r.approver_id for r in self.ledger.records_for(permit.id)]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_permit(self, permit_id: UUID) -> Permit:
        return self._get_permit(permit_id)

    def available_actions(self, permit: Permit, user_id: UUID) -> List[PermitAction]:
        """Lifecycle actions the user may take on the permit in its current status."""
        return self._machine(permit).get_available_actions(user_id)

    def list_pending_for(self, user_id: UUID) -> List[Permit]:
        """Permits awaiting the user's decision."""
        ids = self.ledger.pending_for(user_id)
        if not ids:
            return []
        permits = self.db.query(Permit).filter(
            Permit.id.in_(ids),
            Permit.status.in_([s.value for s in DECISION_STATES]),
        ).order_by(Permit.created_at.asc()).all()
        return permits

    def list_decided_for(self, user_id: UUID, outcome) -> List[Permit]:
        """Permits the user approved (or rejected), most recent decision first."""
        ids = self.ledger.decided_for(user_id, outcome)
        if not ids:
            return []
        by_id = {p.id: p for p in self.db.query(Permit).filter(Permit.id.in_(ids)).all()}
        return [by_id[i] for i in ids if i in by_id]

    def list_created_by(self, user_id: UUID, status=None) -> List[Permit]:
        query = self.db.query(Permit).filter(Permit.created_by == user_id)
        if status is not None:
            query = query.filter(Permit.status == PermitStatus(status).value)
        return query.order_by(Permit.created_at.desc()).all()

    def verify_consistency(self, permit_id: UUID) -> Optional[str]:
        """
        Recompute the permit's aggregate from its records and report drift.

        Returns:
            A description of the inconsistency, or None
        """
        permit = self._get_permit(permit_id)
        records = self.ledger.records_for(permit_id, refresh=True)
        problem = check_permit_consistency(permit.status, [r.state for r in records])
        if problem:
            logger.warning(f"Permit {permit.serial} is inconsistent: {problem}")
        return problem
