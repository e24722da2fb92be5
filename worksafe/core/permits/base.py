"""Shared plumbing for the permit and extension workflows."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from worksafe.core.config import Settings, get_settings
from worksafe.core.approval.states import AggregateStatus
from worksafe.core.approval.errors import NotFoundError
from worksafe.core.approval.machine import PermitStateMachine
from worksafe.db.models import Permit, PermitExtension, PermitHistory
from .events import NotificationSink, NullNotificationSink, WorkflowEvent, emit_safely

logger = logging.getLogger(__name__)


class WorkflowBase:
    """
    Base for services that mutate permits.

    Each public operation runs in its own transaction: it commits on success
    and rolls back on any error. Events are emitted only after the commit.
    """

    def __init__(
        self,
        db: Session,
        *,
        sink: Optional[NotificationSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.sink = sink or NullNotificationSink()
        self.settings = settings or get_settings()

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _get_permit(self, permit_id: UUID) -> Permit:
        permit = self.db.get(Permit, permit_id)
        if permit is None:
            raise NotFoundError(f"Permit {permit_id} not found", permit_id=permit_id)
        return permit

    def _lock_permit(self, permit_id: UUID) -> Permit:
        """Load the permit row FOR UPDATE, refreshing any cached copy."""
        permit = self.db.query(Permit).filter(
            Permit.id == permit_id
        ).with_for_update().populate_existing().first()
        if permit is None:
            raise NotFoundError(f"Permit {permit_id} not found", permit_id=permit_id)
        return permit

    def _open_extension(self, permit_id: UUID) -> Optional[PermitExtension]:
        return self.db.query(PermitExtension).filter(
            PermitExtension.permit_id == permit_id,
            PermitExtension.status == AggregateStatus.PENDING_APPROVAL.value,
        ).first()

    def _machine(self, permit: Permit) -> PermitStateMachine:
        return PermitStateMachine(permit.id, permit.status, creator_id=permit.created_by)

    def _apply(self, permit: Permit, machine: PermitStateMachine) -> None:
        """Copy the machine's status and transitions onto the permit."""
        for record in machine.get_history():
            self._record_history(
                permit,
                from_status=record["from_state"],
                to_status=record["to_state"],
                action=record["action"],
                user_id=record["user_id"],
                comment=record["comment"],
                extra_data=record["extra_data"],
            )
        permit.status = machine.state.value

    def _record_history(
        self,
        permit: Permit,
        *,
        from_status: Optional[str],
        to_status: str,
        action: str,
        user_id: Optional[UUID] = None,
        comment: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> PermitHistory:
        history = PermitHistory(
            permit_id=permit.id,
            from_status=from_status,
            to_status=to_status,
            action=action,
            user_id=user_id,
            comment=comment,
            extra_data=extra_data or {},
        )
        self.db.add(history)
        return history

    def _emit(self, events: Iterable[WorkflowEvent]) -> None:
        if not self.settings.notifications_enabled:
            return
        emit_safely(self.sink, events)
