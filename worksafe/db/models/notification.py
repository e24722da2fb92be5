"""In-app notification and delivery log models."""

import uuid
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Boolean, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from worksafe.core.timeutil import utcnow
from worksafe.db.base import Base


class NotificationChannel(str, Enum):
    """Available notification channels."""
    IN_APP = "in_app"
    WEBHOOK = "webhook"


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    APPROVAL_REQUESTED = "approval_requested"
    PERMIT_DECISION = "permit_decision"
    PERMIT_APPROVED = "permit_approved"
    PERMIT_REJECTED = "permit_rejected"
    PERMIT_READY = "permit_ready"
    PERMIT_STARTED = "permit_started"
    PERMIT_CLOSED = "permit_closed"
    EXTENSION_REQUESTED = "extension_requested"
    EXTENSION_DECISION = "extension_decision"
    EXTENSION_APPROVED = "extension_approved"
    EXTENSION_REJECTED = "extension_rejected"
    START_REMINDER = "start_reminder"
    END_REMINDER = "end_reminder"


class Notification(Base):
    """An in-app notification shown to one user."""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="SET NULL"), nullable=True, index=True)

    event_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
    permit = relationship("Permit")

    def __repr__(self) -> str:
        return f"<Notification {self.event_type} user={self.user_id}>"


class NotificationLog(Base):
    """
    Log of webhook deliveries for audit and debugging.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    channel = Column(String(50), nullable=False)
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(512), nullable=False)  # webhook URL or user ID

    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="SET NULL"), nullable=True)

    payload = Column(JSON, nullable=True)

    # pending, sent, failed
    status = Column(String(50), nullable=False, default="pending")
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0)

    created_at = Column(DateTime, default=utcnow)
    sent_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationLog {self.channel} {self.event_type} [{self.status}]>"
