from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from visitflow.core.concurrency import run_with_retry
from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user
from visitflow.models.user import User
from visitflow.schemas.approval import (
    ApprovalStepDecision,
    ApprovalStepEscalate,
    ApprovalStepResponse,
    ApprovalSummary,
)
from visitflow.services.approval_workflow import ApprovalWorkflow
from visitflow.services.invitation_lifecycle import InvitationLifecycle

router = APIRouter(prefix="/api/invitations/{invitation_id}/approvals", tags=["Approvals"])


@router.get("/", response_model=ApprovalSummary)
def get_approval_summary(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    InvitationLifecycle(db).get_invitation(invitation_id)
    return ApprovalWorkflow(db).summary(invitation_id)


@router.post("/{step_order}/approve", response_model=ApprovalStepResponse)
def approve_step(
    invitation_id: int,
    step_order: int,
    decision: Optional[ApprovalStepDecision] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    comments = decision.comments if decision else None
    workflow = ApprovalWorkflow(db)
    return run_with_retry(
        db, lambda: workflow.approve_step(invitation_id, step_order, current_user, comments), "approve step"
    )


@router.post("/{step_order}/reject", response_model=ApprovalStepResponse)
def reject_step(
    invitation_id: int,
    step_order: int,
    decision: Optional[ApprovalStepDecision] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    comments = decision.comments if decision else None
    workflow = ApprovalWorkflow(db)
    return run_with_retry(
        db, lambda: workflow.reject_step(invitation_id, step_order, current_user, comments), "reject step"
    )


@router.post("/{step_order}/escalate", response_model=ApprovalStepResponse)
def escalate_step(
    invitation_id: int,
    step_order: int,
    escalation: ApprovalStepEscalate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    workflow = ApprovalWorkflow(db)
    return run_with_retry(
        db,
        lambda: workflow.escalate_step(
            invitation_id, step_order, current_user, escalation.to_user_id, escalation.comments
        ),
        "escalate step",
    )
