"""Approval record models.

One record per required role, for a permit or for one of its extension
requests. The set is seeded together with its parent and never grows or
shrinks afterwards; each record is decided at most once.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship, declared_attr

from worksafe.core.timeutil import utcnow
from worksafe.db.base import Base


class ApprovalRecordMixin:
    """Columns shared by permit and extension approval records."""

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    role = Column(String(50), nullable=False)

    # Bound at creation from the site's role assignment, never re-resolved
    @declared_attr
    def approver_id(cls):
        return Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # pending, approved, rejected
    state = Column(String(20), nullable=False, default="pending", index=True)
    decided_at = Column(DateTime, nullable=True)
    signature = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)  # required when rejected
    remarks = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    @declared_attr
    def approver(cls):
        return relationship("User")


class PermitApproval(ApprovalRecordMixin, Base):
    __tablename__ = "permit_approvals"
    __table_args__ = (
        UniqueConstraint("permit_id", "role", name="uq_permit_approvals_permit_role"),
    )

    permit_id = Column(Uuid, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False, index=True)

    permit = relationship("Permit", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<PermitApproval permit={self.permit_id} {self.role} [{self.state}]>"


class ExtensionApproval(ApprovalRecordMixin, Base):
    __tablename__ = "extension_approvals"
    __table_args__ = (
        UniqueConstraint("extension_id", "role", name="uq_extension_approvals_extension_role"),
    )

    extension_id = Column(Uuid, ForeignKey("permit_extensions.id", ondelete="CASCADE"), nullable=False, index=True)

    extension = relationship("PermitExtension", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<ExtensionApproval extension={self.extension_id} {self.role} [{self.state}]>"
