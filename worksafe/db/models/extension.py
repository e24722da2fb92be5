"""Permit extension request model."""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Uuid, Index, text
from sqlalchemy.orm import relationship

from worksafe.core.timeutil import utcnow
from worksafe.db.base import Base


class PermitExtension(Base):
    """
    A request to move a permit's end time.

    Runs its own approval record set over the extension roles. At most one
    request per permit may be pending approval at a time, enforced by a
    partial unique index.
    """
    __tablename__ = "permit_extensions"
    __table_args__ = (
        Index(
            "uq_permit_extensions_open_per_permit",
            "permit_id",
            unique=True,
            postgresql_where=text("status = 'pending_approval'"),
            sqlite_where=text("status = 'pending_approval'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False, index=True)

    requested_by = Column(Uuid, ForeignKey("users.id"), nullable=False)
    reason = Column(Text, nullable=False)

    original_end_time = Column(DateTime, nullable=False)
    new_end_time = Column(DateTime, nullable=False)

    # pending_approval, approved, rejected, or cancelled when the permit closed first
    status = Column(String(50), nullable=False, default="pending_approval", index=True)
    resolved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    permit = relationship("Permit", back_populates="extensions")
    requester = relationship("User")
    approvals = relationship("ExtensionApproval", back_populates="extension", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<PermitExtension permit={self.permit_id} [{self.status}]>"
