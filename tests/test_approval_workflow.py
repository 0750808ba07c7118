import pytest

from visitflow.core.errors import IllegalTransitionError, NotFoundError, PermissionDeniedError, ValidationFailedError
from visitflow.models import ApprovalDecision, InvitationStatus
from visitflow.services.approval_workflow import ApprovalWorkflow


@pytest.fixture
def workflow(db):
    return ApprovalWorkflow(db)


@pytest.fixture
def submitted(db, lifecycle, host, approver, admin, make_invitation):
    """Invitation submitted with two steps: approver first, admin second."""
    invitation = make_invitation()
    lifecycle.submit(invitation.id, host.id, [approver.id, admin.id])
    db.commit()
    return invitation


class TestConfiguration:

    def test_steps_created_in_order(self, workflow, submitted, approver, admin):
        steps = workflow.steps(submitted.id)
        assert [(s.step_order, s.approver_id) for s in steps] == [(1, approver.id), (2, admin.id)]
        assert all(s.decision == ApprovalDecision.PENDING for s in steps)

    def test_configure_only_once(self, workflow, submitted, approver, host):
        with pytest.raises(IllegalTransitionError):
            workflow.configure(submitted, [approver.id], host.id)

    def test_duplicate_approver(self, db, workflow, make_invitation, approver, host):
        invitation = make_invitation()
        with pytest.raises(ValidationFailedError):
            workflow.configure(invitation, [approver.id, approver.id], host.id)

    def test_unknown_approver(self, db, workflow, make_invitation, host):
        invitation = make_invitation()
        with pytest.raises(ValidationFailedError):
            workflow.configure(invitation, [4242], host.id)


class TestDecisions:

    def test_first_decision_moves_invitation_under_review(self, db, workflow, lifecycle, submitted, approver):
        step = workflow.approve_step(submitted.id, 1, approver, "looks good")
        db.commit()
        assert step.decision == ApprovalDecision.APPROVED
        assert step.comments == "looks good"
        assert step.decision_date is not None
        assert submitted.status == InvitationStatus.UNDER_REVIEW
        assert "UnderReview" in [e.event_type for e in lifecycle.events(submitted.id)]

    def test_only_current_approver_or_admin_decides(self, db, workflow, submitted, host, admin):
        with pytest.raises(PermissionDeniedError):
            workflow.approve_step(submitted.id, 1, host)
        step = workflow.reject_step(submitted.id, 1, admin, "override")
        assert step.decision == ApprovalDecision.REJECTED

    def test_decided_step_is_closed(self, db, workflow, submitted, approver):
        workflow.approve_step(submitted.id, 1, approver)
        db.commit()
        with pytest.raises(IllegalTransitionError):
            workflow.reject_step(submitted.id, 1, approver)

    def test_steps_are_not_ordered(self, db, workflow, submitted, admin):
        """Step 2 may be decided before step 1."""
        workflow.approve_step(submitted.id, 2, admin)
        db.commit()
        assert workflow.next_pending_step(submitted.id).step_order == 1

    def test_escalation_hands_step_over(self, db, workflow, lifecycle, submitted, approver, admin, host):
        step = workflow.escalate_step(submitted.id, 1, approver, admin.id, "on leave")
        db.commit()
        assert step.decision == ApprovalDecision.ESCALATED
        assert step.current_approver_id == admin.id
        assert not step.is_terminal
        assert "Escalated" in [e.event_type for e in lifecycle.events(submitted.id)]

        with pytest.raises(PermissionDeniedError):
            workflow.approve_step(submitted.id, 1, approver)
        workflow.approve_step(submitted.id, 1, admin)
        db.commit()
        assert step.decision == ApprovalDecision.APPROVED

    def test_step_decisions_do_not_gate_approval(self, db, workflow, lifecycle, submitted, approver, admin):
        workflow.reject_step(submitted.id, 1, approver, "no")
        lifecycle.approve(submitted.id, admin.id)
        db.commit()
        assert submitted.status == InvitationStatus.APPROVED

    def test_closed_invitation_refuses_decisions(self, db, workflow, lifecycle, submitted, approver, host):
        lifecycle.cancel(submitted.id, host.id)
        db.commit()
        with pytest.raises(IllegalTransitionError):
            workflow.approve_step(submitted.id, 1, approver)

    def test_unknown_step(self, workflow, submitted, admin):
        with pytest.raises(NotFoundError):
            workflow.approve_step(submitted.id, 9, admin)


class TestSummary:

    def test_counts(self, db, workflow, submitted, approver, admin):
        workflow.approve_step(submitted.id, 1, approver)
        workflow.escalate_step(submitted.id, 2, admin, approver.id)
        db.commit()

        summary = workflow.summary(submitted.id)
        assert summary.total_steps == 2
        assert (summary.approved, summary.escalated, summary.pending, summary.rejected) == (1, 1, 0, 0)
        assert not summary.all_required_approved
        assert summary.next_pending_step == 2

        workflow.approve_step(submitted.id, 2, approver)
        db.commit()
        summary = workflow.summary(submitted.id)
        assert summary.all_required_approved
        assert summary.next_pending_step is None
