"""Notification service for in-app and webhook delivery.

Handles:
- In-app notifications for workflow events
- Webhook notifications to an external system
- Start and end reminders for upcoming permits
"""

import logging
from datetime import timedelta
from typing import Optional, Dict, Any, List
from uuid import UUID

import httpx
from jinja2 import Template
from sqlalchemy.orm import Session

from worksafe.core.config import Settings, get_settings
from worksafe.core.timeutil import utcnow
from worksafe.core.approval.states import ApprovalRole, PermitStatus
from worksafe.db.models import Permit, Notification, NotificationLog, NotificationChannel, NotificationEventType

logger = logging.getLogger(__name__)


MESSAGE_TEMPLATES = {
    NotificationEventType.APPROVAL_REQUESTED: Template(
        "Permit {{ serial }} ({{ permit_type }}) is awaiting your approval as {{ role_label }}."
    ),
    NotificationEventType.PERMIT_DECISION: Template(
        "{{ role_label }} {{ decision }} permit {{ serial }}."
        "{% if reason %} Reason: {{ reason }}{% endif %}"
    ),
    NotificationEventType.PERMIT_APPROVED: Template(
        "Permit {{ serial }} has been approved by all approvers."
    ),
    NotificationEventType.PERMIT_REJECTED: Template(
        "Permit {{ serial }} has been rejected."
    ),
    NotificationEventType.PERMIT_READY: Template(
        "Permit {{ serial }} is ready to start."
    ),
    NotificationEventType.PERMIT_STARTED: Template(
        "Work under permit {{ serial }} has started."
    ),
    NotificationEventType.PERMIT_CLOSED: Template(
        "Permit {{ serial }} has been closed."
        "{% if auto_closed %} Its work window ended, so it was closed automatically.{% endif %}"
    ),
    NotificationEventType.EXTENSION_REQUESTED: Template(
        "An extension of permit {{ serial }} until {{ new_end_time }} is awaiting your approval "
        "as {{ role_label }}. Reason: {{ reason }}"
    ),
    NotificationEventType.EXTENSION_DECISION: Template(
        "{{ role_label }} {{ decision }} the extension of permit {{ serial }}."
        "{% if reason %} Reason: {{ reason }}{% endif %}"
    ),
    NotificationEventType.EXTENSION_APPROVED: Template(
        "The extension of permit {{ serial }} was approved. New end time: {{ end_time }}."
    ),
    NotificationEventType.EXTENSION_REJECTED: Template(
        "The extension of permit {{ serial }} was rejected. The end time stays {{ end_time }}."
    ),
    NotificationEventType.START_REMINDER: Template(
        "Permit {{ serial }} is scheduled to start at {{ start_time }}."
    ),
    NotificationEventType.END_REMINDER: Template(
        "Permit {{ serial }} ends at {{ end_time }}. Close it or request an extension."
    ),
}

START_REMINDER_STATES = {PermitStatus.APPROVED, PermitStatus.READY_TO_START}
END_REMINDER_STATES = {
    PermitStatus.ACTIVE,
    PermitStatus.EXTENSION_REQUESTED,
    PermitStatus.EXTENDED,
    PermitStatus.EXTENSION_REJECTED,
}


class NotificationService:
    """
    Service for delivering workflow event notifications.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            db: Database session
            settings: Settings override
            http_client: Client used for webhook delivery (created per call if omitted)
        """
        self.db = db
        self.settings = settings or get_settings()
        self.http_client = http_client

    def render_message(self, event_type: NotificationEventType, context: Dict[str, Any]) -> str:
        template = MESSAGE_TEMPLATES.get(event_type)
        if template is None:
            logger.warning(f"No message template for event type: {event_type}")
            return event_type.value.replace("_", " ")
        return template.render(**context)

    def deliver(self, payload: Dict[str, Any]) -> List[str]:
        """
        Record in-app notifications for an event payload.

        Args:
            payload: ``WorkflowEvent.to_payload()`` output

        Returns:
            IDs of the notifications created
        """
        try:
            event_type = NotificationEventType(payload["event_type"])
        except ValueError:
            logger.warning(f"Ignoring unknown event type: {payload.get('event_type')}")
            return []

        permit_id = UUID(payload["permit_id"])
        message = self.render_message(event_type, self._context(payload))

        notifications = []
        for recipient in payload.get("recipient_ids") or []:
            notification = Notification(
                user_id=UUID(recipient),
                permit_id=permit_id,
                event_type=event_type.value,
                message=message,
            )
            self.db.add(notification)
            notifications.append(notification)

        self.db.commit()
        logger.info(f"Recorded {len(notifications)} {event_type.value} notifications for permit {permit_id}")
        return [str(n.id) for n in notifications]

    def send_webhook(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Post an event payload to the configured webhook.

        Returns:
            ID of the delivery log entry, or None when no webhook is configured

        Raises:
            httpx.HTTPError: If delivery fails (after the failure is logged)
        """
        if not self.settings.webhook_url:
            return None

        body = {
            "event": payload.get("event_type"),
            "timestamp": utcnow().isoformat(),
            "data": payload,
        }
        log = NotificationLog(
            channel=NotificationChannel.WEBHOOK.value,
            event_type=str(payload.get("event_type")),
            recipient=self.settings.webhook_url,
            permit_id=UUID(payload["permit_id"]) if payload.get("permit_id") else None,
            payload=body,
            status="pending",
            attempts=1,
        )
        self.db.add(log)
        self.db.flush()

        try:
            self._post(body)
            log.status = "sent"
            log.sent_at = utcnow()
        except httpx.HTTPError as e:
            logger.exception(f"Failed to send webhook to {self.settings.webhook_url}")
            log.status = "failed"
            log.error_message = str(e)
            self.db.commit()
            raise

        self.db.commit()
        return str(log.id)

    def _post(self, body: Dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.settings.webhook_token:
            headers["Authorization"] = f"Bearer {self.settings.webhook_token}"

        if self.http_client is not None:
            response = self.http_client.post(self.settings.webhook_url, json=body, headers=headers)
            response.raise_for_status()
            return

        with httpx.Client(timeout=self.settings.webhook_timeout) as client:
            response = client.post(self.settings.webhook_url, json=body, headers=headers)
            response.raise_for_status()

    def send_due_reminders(self, now=None) -> int:
        """
        Remind permit creators shortly before a permit starts or ends.

        Each reminder is sent once per permit; extending a permit re-arms
        its end reminder.

        Returns:
            Number of reminders created
        """
        now = now or utcnow()
        horizon = now + timedelta(minutes=self.settings.reminder_lead_minutes)
        sent = 0

        starting = self.db.query(Permit).filter(
            Permit.status.in_([s.value for s in START_REMINDER_STATES]),
            Permit.start_reminder_sent_at.is_(None),
            Permit.start_time > now,
            Permit.start_time <= horizon,
        ).all()
        for permit in starting:
            self._remind(permit, NotificationEventType.START_REMINDER)
            permit.start_reminder_sent_at = now
            sent += 1

        ending = self.db.query(Permit).filter(
            Permit.status.in_([s.value for s in END_REMINDER_STATES]),
            Permit.end_reminder_sent_at.is_(None),
            Permit.end_time > now,
            Permit.end_time <= horizon,
        ).all()
        for permit in ending:
            self._remind(permit, NotificationEventType.END_REMINDER)
            permit.end_reminder_sent_at = now
            sent += 1

        self.db.commit()
        if sent:
            logger.info(f"Sent {sent} permit reminders")
        return sent

    def _remind(self, permit: Permit, event_type: NotificationEventType) -> None:
        message = self.render_message(event_type, {
            "serial": permit.serial,
            "start_time": permit.start_time.isoformat(),
            "end_time": permit.end_time.isoformat(),
        })
        self.db.add(Notification(
            user_id=permit.created_by,
            permit_id=permit.id,
            event_type=event_type.value,
            message=message,
        ))

    def _context(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Build template context for an event payload."""
        context = dict(payload.get("data") or {})
        role = payload.get("role")
        context["role"] = role
        context["role_label"] = ApprovalRole(role).label if role else "An approver"
        context["decision"] = payload.get("decision")
        context.setdefault("serial", payload.get("permit_id"))
        return context
