"""
Approval workflow.
Ordered per-invitation approval steps. Step decisions are an audit and delegation trail;
they do not gate the invitation's own Approve transition, and step order is informational.
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from visitflow.core.errors import IllegalTransitionError, NotFoundError, PermissionDeniedError, ValidationFailedError
from visitflow.models.approval import InvitationApproval, ApprovalDecision
from visitflow.models.invitation import Invitation, InvitationStatus, InvitationEventTypes, TERMINAL_STATUSES
from visitflow.models.user import User, UserRole
from visitflow.schemas.approval import ApprovalStepResponse, ApprovalSummary
from visitflow.services.events import record_event

logger = logging.getLogger(__name__)


class ApprovalWorkflow:
    def __init__(self, db: Session):
        self.db = db

    def steps(self, invitation_id: int) -> List[InvitationApproval]:
        return self.db.query(InvitationApproval).filter(
            InvitationApproval.invitation_id == invitation_id,
            InvitationApproval.is_deleted.is_(False)
        ).order_by(InvitationApproval.step_order).all()

    def _active_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if user is None:
            raise ValidationFailedError([f"User {user_id} does not exist or is inactive."])
        return user

    def configure(self, invitation: Invitation, approver_ids: List[int], actor_id: int) -> List[InvitationApproval]:
        """
        Create steps 1..n for the given approvers, in order.

        Raises:
            IllegalTransitionError: The invitation already has an approval trail
            ValidationFailedError: Unknown, inactive or repeated approver
        """
        if self.steps(invitation.id):
            raise IllegalTransitionError(
                f"Approval steps are already configured for invitation {invitation.invitation_number}.",
                invitation.status,
            )
        if len(set(approver_ids)) != len(approver_ids):
            raise ValidationFailedError(["An approver can only appear once in the approval steps."])

        created = []
        for order, approver_id in enumerate(approver_ids, start=1):
            self._active_user(approver_id)
            step = InvitationApproval(
                invitation_id=invitation.id,
                approver_id=approver_id,
                step_order=order,
                decision=ApprovalDecision.PENDING,
                is_required=True,
            )
            step.set_created_by(actor_id)
            self.db.add(step)
            created.append(step)

        self.db.flush()
        logger.info(f"Configured {len(created)} approval step(s) for invitation {invitation.invitation_number}")
        return created

    def _load(self, invitation_id: int, step_order: int):
        invitation = self.db.query(Invitation).filter(
            Invitation.id == invitation_id,
            Invitation.is_deleted.is_(False)
        ).with_for_update().first()
        if invitation is None:
            raise NotFoundError(f"Invitation {invitation_id} not found")
        if invitation.status in TERMINAL_STATUSES:
            raise IllegalTransitionError(
                f"Invitation {invitation.invitation_number} is {invitation.status.value}; its approval steps are closed.",
                invitation.status,
            )

        step = self.db.query(InvitationApproval).filter(
            InvitationApproval.invitation_id == invitation_id,
            InvitationApproval.step_order == step_order,
            InvitationApproval.is_deleted.is_(False)
        ).with_for_update().first()
        if step is None:
            raise NotFoundError(f"Approval step {step_order} not found for invitation {invitation_id}")
        return invitation, step

    def _ensure_decider(self, step: InvitationApproval, actor: User) -> None:
        if actor.role == UserRole.ADMINISTRATOR:
            return
        if actor.id != step.current_approver_id:
            raise PermissionDeniedError(f"User {actor.id} is not the approver for step {step.step_order}.")

    def _mark_under_review(self, invitation: Invitation, actor_id: int) -> None:
        if invitation.status == InvitationStatus.SUBMITTED:
            invitation.start_review(actor_id)
            record_event(invitation, InvitationEventTypes.UNDER_REVIEW,
                         "Invitation is under review", actor_id)

    def approve_step(self, invitation_id: int, step_order: int, actor: User,
                     comments: Optional[str] = None) -> InvitationApproval:
        invitation, step = self._load(invitation_id, step_order)
        self._ensure_decider(step, actor)
        step.approve(actor.id, comments)
        self._mark_under_review(invitation, actor.id)
        logger.info(f"Step {step_order} of invitation {invitation.invitation_number} approved by {actor.id}")
        return step

    def reject_step(self, invitation_id: int, step_order: int, actor: User,
                    comments: Optional[str] = None) -> InvitationApproval:
        invitation, step = self._load(invitation_id, step_order)
        self._ensure_decider(step, actor)
        step.reject(actor.id, comments)
        self._mark_under_review(invitation, actor.id)
        logger.info(f"Step {step_order} of invitation {invitation.invitation_number} rejected by {actor.id}")
        return step

    def escalate_step(self, invitation_id: int, step_order: int, actor: User, to_user_id: int,
                      comments: Optional[str] = None) -> InvitationApproval:
        invitation, step = self._load(invitation_id, step_order)
        self._ensure_decider(step, actor)
        self._active_user(to_user_id)
        step.escalate(actor.id, to_user_id, comments)
        self._mark_under_review(invitation, actor.id)
        record_event(
            invitation,
            InvitationEventTypes.ESCALATED,
            f"Approval step {step_order} escalated to user {to_user_id}",
            actor.id,
            {"step_order": step_order, "escalated_to_user_id": to_user_id, "comments": comments},
        )
        return step

    def next_pending_step(self, invitation_id: int) -> Optional[InvitationApproval]:
        """First undecided step in order. Informational: decisions are not held back by it."""
        for step in self.steps(invitation_id):
            if not step.is_terminal:
                return step
        return None

    def summary(self, invitation_id: int) -> ApprovalSummary:
        steps = self.steps(invitation_id)
        counts = {decision: 0 for decision in ApprovalDecision}
        for step in steps:
            counts[step.decision] += 1

        required = [step for step in steps if step.is_required]
        next_step = next((step for step in steps if not step.is_terminal), None)
        return ApprovalSummary(
            invitation_id=invitation_id,
            total_steps=len(steps),
            pending=counts[ApprovalDecision.PENDING],
            approved=counts[ApprovalDecision.APPROVED],
            rejected=counts[ApprovalDecision.REJECTED],
            escalated=counts[ApprovalDecision.ESCALATED],
            all_required_approved=bool(required) and all(s.decision == ApprovalDecision.APPROVED for s in required),
            any_rejected=counts[ApprovalDecision.REJECTED] > 0,
            next_pending_step=next_step.step_order if next_step else None,
            steps=[ApprovalStepResponse.model_validate(step) for step in steps],
        )
