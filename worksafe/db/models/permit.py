"""Permit, lifecycle history and closure models."""

import uuid
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Boolean, Uuid
from sqlalchemy.orm import relationship

from worksafe.core.timeutil import utcnow
from worksafe.db.base import Base


class Permit(Base):
    """
    A permit to perform hazardous work at a site.

    Status is only changed by the permit workflow. Permits are never deleted;
    every status change is appended to ``history``.
    """
    __tablename__ = "permits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Human readable serial, e.g. PTW-0001
    serial = Column(String(50), nullable=False, unique=True)
    serial_number = Column(Integer, nullable=False, unique=True)

    site_id = Column(Uuid, ForeignKey("sites.id"), nullable=False, index=True)
    permit_type = Column(String(50), nullable=False)  # general, hot_work, electrical, height, confined_space

    # Work window
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    status = Column(String(50), nullable=False, default="initiated", index=True)

    created_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # Free-form details
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    details = Column(JSON, nullable=False, default=dict)

    started_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Reminder bookkeeping
    start_reminder_sent_at = Column(DateTime, nullable=True)
    end_reminder_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    site = relationship("Site", back_populates="permits")
    creator = relationship("User", foreign_keys=[created_by])
    approvals = relationship("PermitApproval", back_populates="permit", cascade="all, delete-orphan")
    extensions = relationship(
        "PermitExtension", back_populates="permit", order_by="PermitExtension.created_at",
    )
    history = relationship("PermitHistory", back_populates="permit", order_by="PermitHistory.created_at")
    closure = relationship("PermitClosure", back_populates="permit", uselist=False)

    def __repr__(self) -> str:
        return f"<Permit {self.serial} [{self.status}]>"


class PermitHistory(Base):
    """
    Records every status change of a permit.

    Provides the append-only audit trail of the permit lifecycle.
    """
    __tablename__ = "permit_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False, index=True)

    # Transition details; from_status is null for the creation entry
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    comment = Column(Text, nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    permit = relationship("Permit", back_populates="history")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<PermitHistory {self.from_status} -> {self.to_status}>"


class PermitClosure(Base):
    """Closing checklist completed when work on a permit ends."""
    __tablename__ = "permit_closures"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False, unique=True)

    housekeeping_done = Column(Boolean, nullable=False, default=False)
    tools_removed = Column(Boolean, nullable=False, default=False)
    locks_removed = Column(Boolean, nullable=False, default=False)
    area_restored = Column(Boolean, nullable=False, default=False)
    remarks = Column(Text, nullable=True)

    closed_by = Column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    permit = relationship("Permit", back_populates="closure")
    closer = relationship("User")
