"""
InvitationApproval Model
One approver's step in an invitation's approval trail
"""
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from visitflow.core.database import Base
from visitflow.core.errors import IllegalTransitionError
from visitflow.models.mixins import SoftDeleteMixin, utcnow
import enum


class ApprovalDecision(str, enum.Enum):
    """Enum for a step decision; Escalated is a detour, not terminal"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ESCALATED = "ESCALATED"


TERMINAL_DECISIONS = (ApprovalDecision.APPROVED, ApprovalDecision.REJECTED)


class InvitationApproval(SoftDeleteMixin, Base):
    __tablename__ = "vf_invitation_approvals"

    id = Column(Integer, primary_key=True, index=True)
    invitation_id = Column(Integer, ForeignKey("vf_invitations.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("vf_users.id"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    decision = Column(SQLEnum(ApprovalDecision), default=ApprovalDecision.PENDING, nullable=False)
    decision_date = Column(DateTime, nullable=True)
    comments = Column(String(500), nullable=True)
    is_required = Column(Boolean, default=True, nullable=False)

    escalated_to_user_id = Column(Integer, ForeignKey("vf_users.id"), nullable=True)
    escalated_on = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    invitation = relationship("Invitation", back_populates="approvals")

    __table_args__ = (
        UniqueConstraint("invitation_id", "step_order", name="uq_vf_approval_step"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_pending(self) -> bool:
        return self.decision == ApprovalDecision.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.decision in TERMINAL_DECISIONS

    @property
    def current_approver_id(self) -> int:
        """The user now responsible for the step: the escalation target once escalated."""
        return self.escalated_to_user_id or self.approver_id

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise IllegalTransitionError(
                f"Approval step {self.step_order} is already {self.decision.value}.",
                self.decision,
            )

    def approve(self, decided_by: int, comments: Optional[str] = None) -> None:
        self._ensure_open()
        self.decision = ApprovalDecision.APPROVED
        self.decision_date = utcnow()
        self.comments = comments
        self.touch(decided_by)

    def reject(self, decided_by: int, comments: Optional[str] = None) -> None:
        self._ensure_open()
        self.decision = ApprovalDecision.REJECTED
        self.decision_date = utcnow()
        self.comments = comments
        self.touch(decided_by)

    def escalate(self, escalated_by: int, to_user_id: int, comments: Optional[str] = None) -> None:
        self._ensure_open()
        self.decision = ApprovalDecision.ESCALATED
        self.escalated_to_user_id = to_user_id
        self.escalated_on = utcnow()
        self.comments = comments
        self.touch(escalated_by)

    def __repr__(self):
        return f"<InvitationApproval(invitation={self.invitation_id}, step={self.step_order}, decision='{self.decision}')>"
