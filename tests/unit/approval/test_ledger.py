"""Tests for the approval ledger."""

import pytest
from uuid import uuid4

from worksafe.core.approval.states import AggregateStatus, ApprovalRole, Decision
from worksafe.core.approval.errors import (
    AlreadyDecidedError,
    NotAuthorizedError,
    NotFoundError,
    ReasonRequiredError,
    SignatureRequiredError,
)
from worksafe.core.approval.ledger import permit_ledger
from worksafe.db.models import PermitApproval

from tests.factories import create_permit, create_user


@pytest.fixture()
def permit(workflow, full_site, requester):
    return create_permit(workflow, full_site, requester)


@pytest.fixture()
def ledger(db_session):
    return permit_ledger(db_session)


class TestSeed:
    """Test record seeding at permit creation."""

    def test_one_pending_record_per_role(self, ledger, permit, area_manager, safety_officer, site_leader):
        records = ledger.records_for(permit.id)

        assert [r.role for r in records] == ["area_manager", "safety_officer", "site_leader"]
        assert [r.approver_id for r in records] == [area_manager.id, safety_officer.id, site_leader.id]
        assert all(r.state == "pending" for r in records)
        assert all(r.decided_at is None for r in records)

    def test_initial_aggregate_is_pending(self, ledger, permit):
        assert ledger.derive(permit.id) == AggregateStatus.PENDING_APPROVAL


class TestRecordDecision:
    """Test ApprovalLedger.record_decision."""

    def test_approval_stores_signature(self, ledger, db_session, permit, area_manager):
        outcome = ledger.record_decision(
            permit.id, ApprovalRole.AREA_MANAGER, Decision.APPROVED, area_manager.id,
            signature="sig-am", remarks="looks fine",
        )
        db_session.commit()

        assert outcome.aggregate == AggregateStatus.PENDING_APPROVAL
        assert outcome.record.state == "approved"
        assert outcome.record.signature == "sig-am"
        assert outcome.record.remarks == "looks fine"
        assert outcome.record.reason is None
        assert outcome.record.decided_at is not None

    def test_rejection_stores_reason(self, ledger, db_session, permit, safety_officer):
        outcome = ledger.record_decision(
            permit.id, "safety_officer", "rejected", safety_officer.id, reason="No fire watch",
        )
        db_session.commit()

        assert outcome.aggregate == AggregateStatus.REJECTED
        assert outcome.record.reason == "No fire watch"
        assert outcome.record.signature is None

    def test_all_approved(self, ledger, db_session, permit, area_manager, safety_officer, site_leader):
        for role, user in (
            (ApprovalRole.AREA_MANAGER, area_manager),
            (ApprovalRole.SAFETY_OFFICER, safety_officer),
            (ApprovalRole.SITE_LEADER, site_leader),
        ):
            outcome = ledger.record_decision(permit.id, role, Decision.APPROVED, user.id, signature="sig")
        db_session.commit()

        assert outcome.aggregate == AggregateStatus.APPROVED

    def test_wrong_user_not_authorized(self, ledger, permit, safety_officer):
        with pytest.raises(NotAuthorizedError) as exc_info:
            ledger.record_decision(
                permit.id, ApprovalRole.AREA_MANAGER, Decision.APPROVED, safety_officer.id, signature="sig",
            )
        assert exc_info.value.role == ApprovalRole.AREA_MANAGER
        assert exc_info.value.permit_id == permit.id

    def test_role_without_record_not_authorized(self, db_session, workflow, requester, area_manager):
        from tests.factories import create_site

        site = create_site(db_session, area_manager=area_manager)
        permit = create_permit(workflow, site, requester)

        with pytest.raises(NotAuthorizedError):
            permit_ledger(db_session).record_decision(
                permit.id, ApprovalRole.SITE_LEADER, Decision.APPROVED, area_manager.id, signature="sig",
            )

    def test_missing_parent_not_found(self, ledger, area_manager):
        with pytest.raises(NotFoundError):
            ledger.record_decision(
                uuid4(), ApprovalRole.AREA_MANAGER, Decision.APPROVED, area_manager.id, signature="sig",
            )

    def test_pending_is_not_a_decision(self, ledger, permit, area_manager):
        with pytest.raises(ValueError):
            ledger.record_decision(permit.id, ApprovalRole.AREA_MANAGER, Decision.PENDING, area_manager.id)

    @pytest.mark.parametrize("signature", [None, "", "   "])
    def test_approval_without_signature(self, ledger, permit, area_manager, signature):
        with pytest.raises(SignatureRequiredError):
            ledger.record_decision(
                permit.id, ApprovalRole.AREA_MANAGER, Decision.APPROVED, area_manager.id, signature=signature,
            )
        assert ledger.records_for(permit.id, refresh=True)[0].state == "pending"

    @pytest.mark.parametrize("reason", [None, "", "\t"])
    def test_rejection_without_reason(self, ledger, permit, area_manager, reason):
        with pytest.raises(ReasonRequiredError):
            ledger.record_decision(
                permit.id, ApprovalRole.AREA_MANAGER, Decision.REJECTED, area_manager.id, reason=reason,
            )
        assert ledger.records_for(permit.id, refresh=True)[0].state == "pending"

    def test_second_decision_already_decided(self, ledger, db_session, permit, area_manager):
        ledger.record_decision(
            permit.id, ApprovalRole.AREA_MANAGER, Decision.APPROVED, area_manager.id, signature="first",
        )
        db_session.commit()

        with pytest.raises(AlreadyDecidedError):
            ledger.record_decision(
                permit.id, ApprovalRole.AREA_MANAGER, Decision.REJECTED, area_manager.id, reason="changed mind",
            )
        db_session.rollback()

        record = ledger.records_for(permit.id, refresh=True)[0]
        assert record.state == "approved"
        assert record.signature == "first"
        assert record.reason is None


class TestRoleFor:
    """Test which role a user decides."""

    def test_single_role(self, ledger, permit, safety_officer):
        assert ledger.role_for(permit.id, safety_officer.id) == "safety_officer"

    def test_non_approver_not_authorized(self, ledger, permit, requester):
        with pytest.raises(NotAuthorizedError):
            ledger.role_for(permit.id, requester.id)

    def test_multi_role_user_gets_first_pending(self, db_session, workflow, requester):
        from tests.factories import create_site

        person = create_user(db_session)
        site = create_site(db_session, area_manager=person, safety_officer=person)
        permit = create_permit(workflow, site, requester)
        ledger = permit_ledger(db_session)

        assert ledger.role_for(permit.id, person.id) == "area_manager"
        ledger.record_decision(permit.id, "area_manager", "approved", person.id, signature="sig")
        db_session.commit()
        assert ledger.role_for(permit.id, person.id) == "safety_officer"


class TestListings:
    """Test pending_for and decided_for."""

    def test_pending_and_decided(self, ledger, db_session, permit, area_manager, safety_officer):
        assert ledger.pending_for(area_manager.id) == [permit.id]

        ledger.record_decision(permit.id, "area_manager", "approved", area_manager.id, signature="sig")
        db_session.commit()

        assert ledger.pending_for(area_manager.id) == []
        assert ledger.decided_for(area_manager.id, Decision.APPROVED) == [permit.id]
        assert ledger.decided_for(area_manager.id, Decision.REJECTED) == []
        assert ledger.pending_for(safety_officer.id) == [permit.id]

    def test_decided_for_rejects_pending_outcome(self, ledger, area_manager):
        with pytest.raises(ValueError):
            ledger.decided_for(area_manager.id, Decision.PENDING)

    def test_records_not_shared_between_permits(self, ledger, db_session, workflow, full_site, requester, permit):
        other = create_permit(workflow, full_site, requester)

        assert db_session.query(PermitApproval).count() == 6
        assert {r.permit_id for r in ledger.records_for(other.id)} == {other.id}
