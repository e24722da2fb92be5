"""Site and per-site approval role assignment models."""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from worksafe.core.timeutil import utcnow
from worksafe.db.base import Base


class Site(Base):
    """A physical work location whose permits share one set of approvers."""
    __tablename__ = "sites"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    role_assignments = relationship("SiteRoleAssignment", back_populates="site", cascade="all, delete-orphan")
    permits = relationship("Permit", back_populates="site")

    def __repr__(self) -> str:
        return f"<Site {self.code}>"


class SiteRoleAssignment(Base):
    """
    Binds a user to an approval role for one site.

    One row per (site, role). A null user means the role is not required
    for that site's permits. Maintained by site administration; the
    permit workflow only reads it.
    """
    __tablename__ = "site_role_assignments"
    __table_args__ = (
        UniqueConstraint("site_id", "role", name="uq_site_role_assignments_site_role"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    site_id = Column(Uuid, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), nullable=False)  # area_manager, safety_officer, site_leader
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    assigned_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    site = relationship("Site", back_populates="role_assignments")
    user = relationship("User", foreign_keys=[user_id])
    assigner = relationship("User", foreign_keys=[assigned_by])

    def __repr__(self) -> str:
        return f"<SiteRoleAssignment site={self.site_id} {self.role}={self.user_id}>"
