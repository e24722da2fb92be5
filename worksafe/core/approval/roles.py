"""Role resolution: which users must approve permits at a site.

Resolution happens once, when a permit is created. The resolved approvers
are copied onto the permit's approval records, so later reassignments do not
affect permits already in flight.
"""

import logging
from typing import Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from .states import ApprovalRole, ROLE_ORDER
from .errors import NoApproversConfiguredError, NotFoundError

logger = logging.getLogger(__name__)

ResolvedRole = Tuple[ApprovalRole, UUID]


class RoleResolver(Protocol):
    """Source of site role assignments consumed by the permit workflow."""

    def resolve_required_roles(self, site_id: UUID) -> List[ResolvedRole]:
        ...


def _ordered(assignments: Dict[ApprovalRole, Optional[UUID]], site_id) -> List[ResolvedRole]:
    resolved = [
        (role, assignments[role])
        for role in ROLE_ORDER
        if assignments.get(role) is not None
    ]
    if not resolved:
        raise NoApproversConfiguredError(
            f"No approvers are assigned for site {site_id}",
            site_id=site_id,
        )
    return resolved


class SiteRoleResolver:
    """Resolves approvers from the site_role_assignments table."""

    def __init__(self, db: Session):
        self.db = db

    def role_assignments(self, site_id: UUID) -> Dict[ApprovalRole, Optional[UUID]]:
        """Get the site's role to user mapping, including unassigned roles."""
        from worksafe.db.models import Site, SiteRoleAssignment

        site = self.db.query(Site).filter(Site.id == site_id).first()
        if not site:
            raise NotFoundError(f"Site {site_id} not found", site_id=site_id)

        rows = self.db.query(SiteRoleAssignment).filter(
            SiteRoleAssignment.site_id == site_id
        ).all()

        assignments: Dict[ApprovalRole, Optional[UUID]] = {role: None for role in ROLE_ORDER}
        for row in rows:
            try:
                role = ApprovalRole(row.role)
            except ValueError:
                logger.warning(f"Ignoring unknown role {row.role!r} assigned at site {site_id}")
                continue
            assignments[role] = row.user_id
        return assignments

    def resolve_required_roles(self, site_id: UUID) -> List[ResolvedRole]:
        """
        Resolve the approvers required for permits at a site.

        Returns:
            (role, user_id) pairs for every assigned role, in role order

        Raises:
            NotFoundError: If the site does not exist
            NoApproversConfiguredError: If no role has an assigned user
        """
        resolved = _ordered(self.role_assignments(site_id), site_id)
        logger.debug(f"Resolved {len(resolved)} approver roles for site {site_id}")
        return resolved


class StaticRoleResolver:
    """In-memory resolver over a fixed site to role mapping."""

    def __init__(self, mapping: Dict[UUID, Dict[ApprovalRole, Optional[UUID]]]):
        self.mapping = {
            site_id: {ApprovalRole(role): user_id for role, user_id in roles.items()}
            for site_id, roles in mapping.items()
        }

    def resolve_required_roles(self, site_id: UUID) -> List[ResolvedRole]:
        if site_id not in self.mapping:
            raise NotFoundError(f"Site {site_id} not found", site_id=site_id)
        return _ordered(self.mapping[site_id], site_id)


