"""Factory functions for creating test database records.

Each factory creates a model instance, adds it to the session, and flushes
so that database-generated fields (id, created_at, etc.) are populated.
All fields have sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_user, create_site

    def test_something(db_session):
        manager = create_user(db_session, name="Area Manager")
        site = create_site(db_session, area_manager=manager)
        assert site.role_assignments[0].user_id == manager.id
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from worksafe.core.approval.states import ApprovalRole, PermitType
from worksafe.core.permits import PermitWorkflow, WorkWindow, WorkflowEvent
from worksafe.db.models import Site, SiteRoleAssignment, User


_counter = 0

# Fixed reference time so windows are deterministic
BASE_TIME = datetime(2026, 3, 2, 8, 0, 0)

FULL_CHECKLIST = {
    "housekeeping_done": True,
    "tools_removed": True,
    "locks_removed": True,
    "area_restored": True,
}


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


def create_user(
    session: Session,
    *,
    email: Optional[str] = None,
    name: Optional[str] = None,
    is_active: bool = True,
) -> User:
    n = _next_id()
    user = User(
        email=email or f"user-{n}@example.com",
        name=name or f"Test User {n}",
        is_active=is_active,
    )
    session.add(user)
    session.flush()
    return user


# ---------------------------------------------------------------------------
# Site
# ---------------------------------------------------------------------------


def create_site(
    session: Session,
    *,
    name: Optional[str] = None,
    area_manager: Optional[User] = None,
    safety_officer: Optional[User] = None,
    site_leader: Optional[User] = None,
) -> Site:
    """Create a site with one assignment row per role (null when not given)."""
    n = _next_id()
    site = Site(name=name or f"Test Site {n}", code=f"SITE-{n}")
    session.add(site)
    session.flush()

    for role, user in (
        (ApprovalRole.AREA_MANAGER, area_manager),
        (ApprovalRole.SAFETY_OFFICER, safety_officer),
        (ApprovalRole.SITE_LEADER, site_leader),
    ):
        session.add(SiteRoleAssignment(
            site_id=site.id,
            role=role.value,
            user_id=user.id if user else None,
        ))
    session.flush()
    return site


# ---------------------------------------------------------------------------
# Permit
# ---------------------------------------------------------------------------


def window(start: Optional[datetime] = None, hours: int = 8) -> WorkWindow:
    start = start or BASE_TIME
    return WorkWindow(start, start + timedelta(hours=hours))


def create_permit(
    workflow: PermitWorkflow,
    site: Site,
    creator: User,
    *,
    permit_type: PermitType = PermitType.HOT_WORK,
    work_window: Optional[WorkWindow] = None,
    details: Optional[dict] = None,
):
    """Create a permit through the workflow."""
    return workflow.create_permit(
        site.id,
        permit_type,
        work_window or window(),
        creator.id,
        details or {"description": "Weld bracket on line 3", "location": "Bay 4"},
    )


# ---------------------------------------------------------------------------
# Notification sinks
# ---------------------------------------------------------------------------


class RecordingSink:
    """Keeps every emitted event."""

    def __init__(self):
        self.events: list[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[WorkflowEvent]:
        return [e for e in self.events if e.event_type == event_type]


class FailingSink:
    """Raises on every emit."""

    def __init__(self):
        self.calls = 0

    def emit(self, event: WorkflowEvent) -> None:
        self.calls += 1
        raise RuntimeError("notification broker unavailable")
