"""Approval ledger: per-role decision records with compare-and-swap decisions.

The same ledger serves permits and extension requests; each is a parent row
owning one approval record per required role.

A decision is recorded as a conditional UPDATE that only matches a record
still in the pending state, so two racing decisions on one role produce
exactly one winner. The winner then locks the parent row and re-reads the
whole record set inside the same transaction, so the derived aggregate
always reflects the post-update records.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from worksafe.core.timeutil import utcnow
from .states import (
    AggregateStatus,
    ApprovalRole,
    Decision,
    PermitStatus,
    TERMINAL_STATES,
    role_sort_key,
)
from .derivation import derive_aggregate
from .errors import (
    AlreadyDecidedError,
    NotAuthorizedError,
    NotFoundError,
    ReasonRequiredError,
    SignatureRequiredError,
    TerminalStateError,
)

logger = logging.getLogger(__name__)


@dataclass
class LedgerOutcome:
    """Result of a recorded decision."""
    record: Any
    parent: Any
    aggregate: AggregateStatus


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class ApprovalLedger:
    """
    Decision records for one kind of parent (permit or extension request).

    Args:
        db: Database session
        record_model: Approval record model
        parent_model: Model owning the records
        parent_fk: Name of the record column referencing the parent
        terminal_reason: Returns why a (locked) parent accepts no decisions,
            or None while it is open
        label: Parent name used in error messages
    """

    def __init__(
        self,
        db: Session,
        record_model,
        parent_model,
        parent_fk: str,
        *,
        terminal_reason: Callable[[Any], Optional[str]],
        label: str,
    ):
        self.db = db
        self.record_model = record_model
        self.parent_model = parent_model
        self.parent_fk = parent_fk
        self.terminal_reason = terminal_reason
        self.label = label

    @property
    def _fk(self):
        return getattr(self.record_model, self.parent_fk)

    def _context(self, parent_id) -> dict:
        key = "extension_id" if self.label == "extension" else "permit_id"
        return {key: parent_id}

    def seed(self, parent_id: UUID, approvers) -> List[Any]:
        """Create one pending record per (role, approver) pair."""
        records = []
        for role, user_id in approvers:
            record = self.record_model(
                role=ApprovalRole(role).value,
                approver_id=user_id,
                state=Decision.PENDING.value,
            )
            setattr(record, self.parent_fk, parent_id)
            self.db.add(record)
            records.append(record)
        self.db.flush()
        return records

    def records_for(self, parent_id: UUID, *, refresh: bool = False) -> List[Any]:
        """Get the parent's records in role order."""
        query = self.db.query(self.record_model).filter(self._fk == parent_id)
        if refresh:
            query = query.populate_existing()
        return sorted(query.all(), key=lambda r: role_sort_key(r.role))

    def derive(self, parent_id: UUID) -> AggregateStatus:
        """Recompute the aggregate from the stored records."""
        return derive_aggregate(r.state for r in self.records_for(parent_id, refresh=True))

    def record_decision(
        self,
        parent_id: UUID,
        role,
        decision,
        actor_user_id: UUID,
        signature: Optional[str] = None,
        reason: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> LedgerOutcome:
        """
        Record one role's decision and re-derive the parent's aggregate.

        Nothing is written unless every precondition holds. The caller owns
        the transaction and must commit (or roll back) afterwards.

        Raises:
            NotFoundError: If the parent does not exist
            NotAuthorizedError: If the role has no record on the parent or
                the actor is not its bound approver
            TerminalStateError: If the parent accepts no further decisions
            AlreadyDecidedError: If the record is no longer pending
            ReasonRequiredError: If a rejection has no reason
            SignatureRequiredError: If an approval has no signature
        """
        role = ApprovalRole(role)
        decision = Decision(decision)
        if decision == Decision.PENDING:
            raise ValueError("A decision must be approved or rejected")

        context = dict(self._context(parent_id), role=role)

        parent = self.db.get(self.parent_model, parent_id)
        if parent is None:
            raise NotFoundError(f"{self.label.capitalize()} {parent_id} not found", **context)

        record = self.db.query(self.record_model).filter(
            self._fk == parent_id,
            self.record_model.role == role.value,
        ).first()
        if record is None:
            raise NotAuthorizedError(
                f"No {role.label} approval is required for this {self.label}", **context
            )
        if record.approver_id != actor_user_id:
            raise NotAuthorizedError(
                f"User {actor_user_id} is not the bound {role.label} for this {self.label}", **context
            )

        if record.state != Decision.PENDING.value:
            raise AlreadyDecidedError(
                f"{role.label} has already {record.state} this {self.label}", **context
            )

        why = self.terminal_reason(parent)
        if why:
            raise TerminalStateError(why, **context)

        if decision == Decision.REJECTED and _blank(reason):
            raise ReasonRequiredError("A rejection requires a reason", **context)
        if decision == Decision.APPROVED and _blank(signature):
            raise SignatureRequiredError("An approval requires a signature", **context)

        values = {
            "state": decision.value,
            "decided_at": utcnow(),
            "signature": signature if decision == Decision.APPROVED else None,
            "reason": reason if decision == Decision.REJECTED else None,
            "remarks": remarks,
        }
        updated = self.db.query(self.record_model).filter(
            self.record_model.id == record.id,
            self.record_model.state == Decision.PENDING.value,
        ).update(values, synchronize_session=False)

        if updated != 1:
            logger.info(f"Lost decision race on {self.label} {parent_id} role {role.value}")
            raise AlreadyDecidedError(
                f"{role.label} has already decided this {self.label}", **context
            )

        # Serialize re-derivation on the parent row
        parent = self.db.query(self.parent_model).filter(
            self.parent_model.id == parent_id
        ).with_for_update().populate_existing().one()

        why = self.terminal_reason(parent)
        if why:
            raise TerminalStateError(why, **context)

        records = self.records_for(parent_id, refresh=True)
        aggregate = derive_aggregate(r.state for r in records)
        record = next(r for r in records if r.id == record.id)

        logger.info(
            f"{role.value} {decision.value} {self.label} {parent_id} by {actor_user_id}; "
            f"aggregate now {aggregate.value}"
        )
        return LedgerOutcome(record=record, parent=parent, aggregate=aggregate)

    def role_for(self, parent_id: UUID, user_id: UUID) -> str:
        """
        Pick the role the user decides on the parent.

        A user bound to several roles decides the first still-pending one in
        role order. A user with no pending role left gets their first role,
        so ``record_decision`` reports the conflict.

        Raises:
            NotAuthorizedError: If the user is bound to no role on the parent
        """
        records = self.db.query(self.record_model).filter(
            self._fk == parent_id,
            self.record_model.approver_id == user_id,
        ).all()
        if not records:
            raise NotAuthorizedError(
                f"User {user_id} is not an approver of this {self.label}",
                **self._context(parent_id),
            )
        records.sort(key=lambda r: role_sort_key(r.role))
        pending = [r for r in records if r.state == Decision.PENDING.value]
        return (pending or records)[0].role

    def pending_for(self, user_id: UUID) -> List[UUID]:
        """Parent IDs with a pending record bound to the user."""
        rows = self.db.query(self._fk).filter(
            self.record_model.approver_id == user_id,
            self.record_model.state == Decision.PENDING.value,
        ).order_by(self.record_model.created_at.asc()).all()
        return _unique(row[0] for row in rows)

    def decided_for(self, user_id: UUID, outcome) -> List[UUID]:
        """Parent IDs whose record bound to the user was decided with the outcome."""
        outcome = Decision(outcome)
        if outcome == Decision.PENDING:
            raise ValueError("Outcome must be approved or rejected")
        rows = self.db.query(self._fk).filter(
            self.record_model.approver_id == user_id,
            self.record_model.state == outcome.value,
        ).order_by(self.record_model.decided_at.desc()).all()
        return _unique(row[0] for row in rows)


def _unique(ids) -> List[UUID]:
    seen = set()
    result = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _permit_terminal_reason(permit) -> Optional[str]:
    status = PermitStatus(permit.status)
    if status in TERMINAL_STATES:
        return f"Permit {permit.serial} is {status.value}"
    return None


def _extension_terminal_reason(extension) -> Optional[str]:
    if extension.status != AggregateStatus.PENDING_APPROVAL.value:
        return f"Extension request is already {extension.status}"
    if extension.permit is not None and PermitStatus(extension.permit.status) in TERMINAL_STATES:
        return f"Permit {extension.permit.serial} is {extension.permit.status}"
    return None


def permit_ledger(db: Session) -> ApprovalLedger:
    from worksafe.db.models import Permit, PermitApproval

    return ApprovalLedger(
        db, PermitApproval, Permit, "permit_id",
        terminal_reason=_permit_terminal_reason, label="permit",
    )


def extension_ledger(db: Session) -> ApprovalLedger:
    from worksafe.db.models import PermitExtension, ExtensionApproval

    return ApprovalLedger(
        db, ExtensionApproval, PermitExtension, "extension_id",
        terminal_reason=_extension_terminal_reason, label="extension",
    )
