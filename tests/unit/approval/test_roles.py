"""Tests for site role resolution."""

import pytest
from uuid import uuid4

from worksafe.core.approval.states import ApprovalRole
from worksafe.core.approval.errors import NoApproversConfiguredError, NotFoundError
from worksafe.core.approval.roles import SiteRoleResolver, StaticRoleResolver
from worksafe.db.models import SiteRoleAssignment

from tests.factories import create_site, create_user


class TestSiteRoleResolver:
    """Test resolution from site role assignments."""

    def test_resolves_assigned_roles_in_order(self, db_session, area_manager, site_leader):
        site = create_site(db_session, area_manager=area_manager, site_leader=site_leader)

        resolved = SiteRoleResolver(db_session).resolve_required_roles(site.id)

        assert resolved == [
            (ApprovalRole.AREA_MANAGER, area_manager.id),
            (ApprovalRole.SITE_LEADER, site_leader.id),
        ]

    def test_all_roles_assigned(self, db_session, full_site, area_manager, safety_officer, site_leader):
        resolved = SiteRoleResolver(db_session).resolve_required_roles(full_site.id)

        assert [role for role, _ in resolved] == [
            ApprovalRole.AREA_MANAGER,
            ApprovalRole.SAFETY_OFFICER,
            ApprovalRole.SITE_LEADER,
        ]
        assert [user for _, user in resolved] == [area_manager.id, safety_officer.id, site_leader.id]

    def test_same_user_may_hold_several_roles(self, db_session):
        person = create_user(db_session)
        site = create_site(db_session, area_manager=person, safety_officer=person)

        resolved = SiteRoleResolver(db_session).resolve_required_roles(site.id)

        assert resolved == [
            (ApprovalRole.AREA_MANAGER, person.id),
            (ApprovalRole.SAFETY_OFFICER, person.id),
        ]

    def test_no_assignments_raises(self, db_session):
        site = create_site(db_session)

        with pytest.raises(NoApproversConfiguredError) as exc_info:
            SiteRoleResolver(db_session).resolve_required_roles(site.id)
        assert exc_info.value.code == "ErrNoApproversConfigured"

    def test_unknown_site_raises_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            SiteRoleResolver(db_session).resolve_required_roles(uuid4())

    def test_role_assignments_include_unassigned(self, db_session, area_manager):
        site = create_site(db_session, area_manager=area_manager)

        assignments = SiteRoleResolver(db_session).role_assignments(site.id)

        assert assignments == {
            ApprovalRole.AREA_MANAGER: area_manager.id,
            ApprovalRole.SAFETY_OFFICER: None,
            ApprovalRole.SITE_LEADER: None,
        }

    def test_unknown_role_rows_are_ignored(self, db_session, area_manager, caplog):
        site = create_site(db_session, area_manager=area_manager)
        other = create_user(db_session)
        db_session.add(SiteRoleAssignment(site_id=site.id, role="night_supervisor", user_id=other.id))
        db_session.flush()

        resolved = SiteRoleResolver(db_session).resolve_required_roles(site.id)

        assert resolved == [(ApprovalRole.AREA_MANAGER, area_manager.id)]
        assert "night_supervisor" in caplog.text


class TestStaticRoleResolver:
    """Test the in-memory resolver."""

    def test_resolves_from_mapping(self):
        site_id, manager, leader = uuid4(), uuid4(), uuid4()
        resolver = StaticRoleResolver({
            site_id: {"site_leader": leader, ApprovalRole.AREA_MANAGER: manager},
        })

        assert resolver.resolve_required_roles(site_id) == [
            (ApprovalRole.AREA_MANAGER, manager),
            (ApprovalRole.SITE_LEADER, leader),
        ]

    def test_unassigned_roles_are_skipped(self):
        site_id, officer = uuid4(), uuid4()
        resolver = StaticRoleResolver({
            site_id: {ApprovalRole.AREA_MANAGER: None, ApprovalRole.SAFETY_OFFICER: officer},
        })

        assert resolver.resolve_required_roles(site_id) == [(ApprovalRole.SAFETY_OFFICER, officer)]

    def test_empty_site_raises(self):
        site_id = uuid4()
        resolver = StaticRoleResolver({site_id: {}})

        with pytest.raises(NoApproversConfiguredError):
            resolver.resolve_required_roles(site_id)

    def test_unknown_site_raises(self):
        with pytest.raises(NotFoundError):
            StaticRoleResolver({}).resolve_required_roles(uuid4())
