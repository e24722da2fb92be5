"""Workflow events and the notification sinks that receive them.

Events are emitted after the workflow commits. Delivery is fire-and-forget:
a failing sink is logged and never undoes a recorded decision.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass
class WorkflowEvent:
    """Something that happened to a permit, addressed to a set of users."""

    event_type: str
    permit_id: UUID
    role: Optional[str] = None
    decision: Optional[str] = None
    extension_id: Optional[UUID] = None
    recipient_ids: List[UUID] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-serializable form, as sent to the Celery task."""
        return {
            "event_type": _text(self.event_type),
            "permit_id": str(self.permit_id),
            "role": _text(self.role),
            "decision": _text(self.decision),
            "extension_id": str(self.extension_id) if self.extension_id else None,
            "recipient_ids": [str(r) for r in self.recipient_ids],
            "data": {k: _text(v) for k, v in self.data.items()},
        }


def _text(value):
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class NotificationSink(Protocol):
    def emit(self, event: WorkflowEvent) -> None:
        ...


class NullNotificationSink:
    """Discards events."""

    def emit(self, event: WorkflowEvent) -> None:
        logger.debug(f"Dropping {event.event_type} event for permit {event.permit_id}")


class CeleryNotificationSink:
    """Queues events for the notification worker."""

    def emit(self, event: WorkflowEvent) -> None:
        from worksafe.workers.notification_tasks import deliver_notification

        deliver_notification.delay(event.to_payload())


def emit_safely(sink: NotificationSink, events: Iterable[WorkflowEvent]) -> int:
    """
    Emit events, logging and dropping any sink failure.

    Returns:
        Number of events the sink accepted
    """
    accepted = 0
    for event in events:
        try:
            sink.emit(event)
            accepted += 1
        except Exception:
            logger.exception(
                f"Failed to emit {event.event_type} event for permit {event.permit_id}"
            )
    return accepted
