"""Tests for the extension workflow."""

import pytest
from datetime import timedelta
from uuid import uuid4

from worksafe.core.approval.states import Decision
from worksafe.core.approval.errors import (
    AlreadyDecidedError,
    ExtensionInProgressError,
    InvalidStateError,
    InvalidWindowError,
    NoApproversConfiguredError,
    NotAuthorizedError,
    NotFoundError,
    ReasonRequiredError,
    SignatureRequiredError,
    TerminalStateError,
)
from worksafe.core.permits import ExtensionWorkflow
from worksafe.db.models import PermitExtension

from tests.factories import BASE_TIME, FULL_CHECKLIST, create_permit, create_site


ORIGINAL_END = BASE_TIME + timedelta(hours=8)
NEW_END = ORIGINAL_END + timedelta(hours=2)


@pytest.fixture()
def active_permit(workflow, full_site, requester, area_manager, safety_officer, site_leader):
    permit = create_permit(workflow, full_site, requester)
    for user in (area_manager, safety_officer, site_leader):
        workflow.approve(permit.id, user.id, signature="sig")
    return workflow.start_permit(permit.id, requester.id, now=BASE_TIME + timedelta(hours=1))


@pytest.fixture()
def extension(extension_workflow, active_permit, requester):
    return extension_workflow.request_extension(active_permit.id, requester.id, NEW_END, "Curing takes longer")


class TestRequestExtension:
    """Test extension requests."""

    def test_request_moves_permit_to_extension_requested(
        self, extension_workflow, workflow, extension, active_permit, requester
    ):
        assert extension.status == "pending_approval"
        assert extension.requested_by == requester.id
        assert extension.original_end_time == ORIGINAL_END
        assert extension.new_end_time == NEW_END

        permit = workflow.get_permit(active_permit.id)
        assert permit.status == "extension_requested"
        assert permit.end_time == ORIGINAL_END

    def test_default_roles_are_safety_officer_and_site_leader(
        self, extension, safety_officer, site_leader
    ):
        approvals = sorted(extension.approvals, key=lambda a: a.role)

        assert [(a.role, a.approver_id) for a in approvals] == [
            ("safety_officer", safety_officer.id),
            ("site_leader", site_leader.id),
        ]
        assert all(a.state == "pending" for a in approvals)

    def test_roles_configured_per_permit_type(
        self, db_session, sink, settings, active_permit, requester, area_manager
    ):
        settings.extension_roles = {"hot_work": ["area_manager"]}
        workflow = ExtensionWorkflow(db_session, sink=sink, settings=settings)

        extension = workflow.request_extension(active_permit.id, requester.id, NEW_END, "More time")

        assert [(a.role, a.approver_id) for a in extension.approvals] == [("area_manager", area_manager.id)]

    def test_emits_requests_to_approvers(self, extension, sink, safety_officer, site_leader):
        requests = sink.of_type("extension_requested")

        assert [e.recipient_ids for e in requests] == [[safety_officer.id], [site_leader.id]]
        assert all(e.extension_id == extension.id for e in requests)

    def test_second_open_request_rejected(self, extension_workflow, extension, active_permit, requester):
        with pytest.raises(ExtensionInProgressError) as exc_info:
            extension_workflow.request_extension(
                active_permit.id, requester.id, NEW_END + timedelta(hours=1), "Even more time",
            )
        assert exc_info.value.extension_id == extension.id

    def test_not_allowed_before_start(self, extension_workflow, workflow, full_site, requester):
        permit = create_permit(workflow, full_site, requester)

        with pytest.raises(InvalidStateError):
            extension_workflow.request_extension(permit.id, requester.id, NEW_END, "More time")

    def test_reason_required(self, extension_workflow, active_permit, requester):
        with pytest.raises(ReasonRequiredError):
            extension_workflow.request_extension(active_permit.id, requester.id, NEW_END, " ")

    @pytest.mark.parametrize("new_end", [ORIGINAL_END, ORIGINAL_END - timedelta(minutes=1)])
    def test_new_end_must_be_later(self, extension_workflow, active_permit, requester, new_end):
        with pytest.raises(InvalidWindowError):
            extension_workflow.request_extension(active_permit.id, requester.id, new_end, "More time")

    def test_no_bound_extension_approvers(
        self, db_session, workflow, extension_workflow, requester, area_manager
    ):
        site = create_site(db_session, area_manager=area_manager)
        permit = create_permit(workflow, site, requester)
        workflow.approve(permit.id, area_manager.id, signature="sig")
        workflow.start_permit(permit.id, requester.id, now=BASE_TIME)

        with pytest.raises(NoApproversConfiguredError):
            extension_workflow.request_extension(permit.id, requester.id, NEW_END, "More time")

        assert db_session.query(PermitExtension).count() == 0
        assert workflow.get_permit(permit.id).status == "active"

    def test_closed_permit(self, workflow, extension_workflow, active_permit, requester):
        workflow.close_permit(active_permit.id, requester.id, FULL_CHECKLIST)

        with pytest.raises(TerminalStateError):
            extension_workflow.request_extension(active_permit.id, requester.id, NEW_END, "More time")

    def test_unknown_permit(self, extension_workflow, requester):
        with pytest.raises(NotFoundError):
            extension_workflow.request_extension(uuid4(), requester.id, NEW_END, "More time")


class TestExtensionDecisions:
    """Test approving and rejecting extensions."""

    def test_full_approval_moves_end_time(
        self, extension_workflow, workflow, extension, active_permit, safety_officer, site_leader, sink
    ):
        """Scenario: both extension approvers sign off."""
        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig-so")
        assert workflow.get_permit(active_permit.id).end_time == ORIGINAL_END

        extension = extension_workflow.approve_extension(extension.id, site_leader.id, signature="sig-sl")

        assert extension.status == "approved"
        assert extension.resolved_at is not None
        permit = workflow.get_permit(active_permit.id)
        assert permit.status == "extended"
        assert permit.end_time == NEW_END
        assert len(sink.of_type("extension_approved")) == 1

    def test_rejection_keeps_end_time(
        self, extension_workflow, workflow, extension, active_permit, safety_officer, site_leader
    ):
        extension = extension_workflow.reject_extension(extension.id, site_leader.id, reason="Crew fatigue")

        assert extension.status == "rejected"
        permit = workflow.get_permit(active_permit.id)
        assert permit.status == "extension_rejected"
        assert permit.end_time == ORIGINAL_END

        with pytest.raises(TerminalStateError):
            extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")

    def test_split_decision_rejects_and_allows_new_request(
        self, extension_workflow, workflow, extension, active_permit, requester, safety_officer, site_leader
    ):
        """Scenario: one extension approver approves, the other rejects."""
        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig-so")
        extension_workflow.reject_extension(extension.id, site_leader.id, reason="schedule conflict")

        permit = workflow.get_permit(active_permit.id)
        assert permit.status == "extension_rejected"
        assert permit.end_time == ORIGINAL_END

        second = extension_workflow.request_extension(active_permit.id, requester.id, NEW_END, "Retry")
        assert second.status == "pending_approval"
        assert workflow.get_permit(active_permit.id).status == "extension_requested"

    def test_new_request_after_rejection(
        self, extension_workflow, extension, active_permit, requester, site_leader
    ):
        extension_workflow.reject_extension(extension.id, site_leader.id, reason="Too long")

        second = extension_workflow.request_extension(
            active_permit.id, requester.id, ORIGINAL_END + timedelta(hours=1), "One hour then",
        )

        assert second.status == "pending_approval"
        assert second.id != extension.id

    def test_new_request_after_grant(
        self, extension_workflow, workflow, extension, active_permit, requester, safety_officer, site_leader
    ):
        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")
        extension_workflow.approve_extension(extension.id, site_leader.id, signature="sig")

        with pytest.raises(InvalidWindowError):
            extension_workflow.request_extension(active_permit.id, requester.id, NEW_END, "Same end")

        second = extension_workflow.request_extension(
            active_permit.id, requester.id, NEW_END + timedelta(hours=1), "Another hour",
        )
        assert second.original_end_time == NEW_END

    def test_non_approver(self, extension_workflow, extension, area_manager):
        with pytest.raises(NotAuthorizedError):
            extension_workflow.approve_extension(extension.id, area_manager.id, signature="sig")

    def test_signature_and_reason_required(self, extension_workflow, extension, safety_officer):
        with pytest.raises(SignatureRequiredError):
            extension_workflow.approve_extension(extension.id, safety_officer.id, signature="")
        with pytest.raises(ReasonRequiredError):
            extension_workflow.reject_extension(extension.id, safety_officer.id, reason=None)

        assert extension_workflow.get_extension(extension.id).status == "pending_approval"

    def test_already_decided(self, extension_workflow, extension, safety_officer):
        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")

        with pytest.raises(AlreadyDecidedError):
            extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")

    def test_closing_permit_cancels_open_request(
        self, workflow, extension_workflow, extension, active_permit, requester, safety_officer, site_leader
    ):
        workflow.close_permit(active_permit.id, requester.id, FULL_CHECKLIST)

        cancelled = extension_workflow.get_extension(extension.id)
        assert cancelled.status == "cancelled"
        assert cancelled.resolved_at is not None
        assert extension_workflow.list_pending_extensions_for(safety_officer.id) == []
        assert extension_workflow.list_pending_extensions_for(site_leader.id) == []

        with pytest.raises(TerminalStateError):
            extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")
        with pytest.raises(TerminalStateError):
            extension_workflow.reject_extension(extension.id, site_leader.id, reason="Too late")

        permit = workflow.get_permit(active_permit.id)
        assert permit.status == "closed"
        assert permit.end_time == ORIGINAL_END

    def test_close_leaves_resolved_requests_alone(
        self, workflow, extension_workflow, extension, active_permit, requester, site_leader
    ):
        extension_workflow.reject_extension(extension.id, site_leader.id, reason="Crew fatigue")

        workflow.close_permit(active_permit.id, requester.id, FULL_CHECKLIST)

        assert extension_workflow.get_extension(extension.id).status == "rejected"

    def test_decision_events(self, extension_workflow, extension, sink, requester, safety_officer):
        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")

        decisions = sink.of_type("extension_decision")
        assert len(decisions) == 1
        assert decisions[0].decision == Decision.APPROVED
        assert decisions[0].recipient_ids == [requester.id]
        assert sink.of_type("extension_approved") == []

    def test_grant_rearms_end_reminder(
        self, db_session, extension_workflow, workflow, extension, active_permit, safety_officer, site_leader
    ):
        permit = workflow.get_permit(active_permit.id)
        permit.end_reminder_sent_at = BASE_TIME
        db_session.commit()

        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")
        extension_workflow.approve_extension(extension.id, site_leader.id, signature="sig")

        assert workflow.get_permit(active_permit.id).end_reminder_sent_at is None


class TestExtensionQueries:
    """Test extension listings."""

    def test_pending_and_decided(self, extension_workflow, extension, safety_officer, site_leader):
        assert [e.id for e in extension_workflow.list_pending_extensions_for(safety_officer.id)] == [extension.id]

        extension_workflow.approve_extension(extension.id, safety_officer.id, signature="sig")

        assert extension_workflow.list_pending_extensions_for(safety_officer.id) == []
        decided = extension_workflow.list_decided_extensions_for(safety_officer.id, "approved")
        assert [e.id for e in decided] == [extension.id]
        assert [e.id for e in extension_workflow.list_pending_extensions_for(site_leader.id)] == [extension.id]

    def test_get_extension_not_found(self, extension_workflow):
        with pytest.raises(NotFoundError):
            extension_workflow.get_extension(uuid4())
