from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from visitflow.models.approval import ApprovalDecision


class ApprovalStepDecision(BaseModel):
    comments: Optional[str] = Field(None, max_length=500)


class ApprovalStepEscalate(BaseModel):
    to_user_id: int = Field(..., description="User who takes over the step")
    comments: Optional[str] = Field(None, max_length=500)


class ApprovalStepResponse(BaseModel):
    """Schema for one approval step"""
    id: int
    invitation_id: int
    approver_id: int
    step_order: int
    decision: ApprovalDecision
    decision_date: Optional[datetime] = None
    comments: Optional[str] = None
    is_required: bool
    escalated_to_user_id: Optional[int] = None
    escalated_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalSummary(BaseModel):
    """Counts over an invitation's approval trail"""
    invitation_id: int
    total_steps: int
    pending: int
    approved: int
    rejected: int
    escalated: int
    all_required_approved: bool
    any_rejected: bool
    next_pending_step: Optional[int] = None
    steps: list[ApprovalStepResponse] = Field(default_factory=list)
