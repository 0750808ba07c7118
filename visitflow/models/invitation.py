"""
Invitation Model
A scheduled visit moving through the approval and presence lifecycle.
Status changes only through the transition methods below; each one checks its legal
source states first and leaves the row untouched when it refuses.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from visitflow.core.config import settings
from visitflow.core.database import Base
from visitflow.core.errors import IllegalTransitionError
from visitflow.models.mixins import SoftDeleteMixin, AuditMixin, utcnow
import enum


class InvitationStatus(str, enum.Enum):
    """Enum for invitation lifecycle status"""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class InvitationType(str, enum.Enum):
    SINGLE = "SINGLE"
    GROUP = "GROUP"


TERMINAL_STATUSES = frozenset({InvitationStatus.COMPLETED, InvitationStatus.CANCELLED, InvitationStatus.EXPIRED})

# Legal source states per transition
LEGAL_SOURCES = {
    "submit": frozenset({InvitationStatus.DRAFT}),
    "start_review": frozenset({InvitationStatus.SUBMITTED}),
    "approve": frozenset({InvitationStatus.SUBMITTED, InvitationStatus.UNDER_REVIEW, InvitationStatus.REJECTED}),
    "reject": frozenset(InvitationStatus),
    "check_in": frozenset({InvitationStatus.APPROVED}),
    "check_out": frozenset({InvitationStatus.ACTIVE}),
    "cancel": frozenset(InvitationStatus) - TERMINAL_STATUSES,
    "expire": frozenset({InvitationStatus.APPROVED, InvitationStatus.ACTIVE}),
}

# States in which the invitation holds capacity on its occupancy row
HOLDING_STATUSES = frozenset({InvitationStatus.APPROVED, InvitationStatus.ACTIVE})


class Invitation(SoftDeleteMixin, Base):
    __tablename__ = "vf_invitations"

    id = Column(Integer, primary_key=True, index=True)
    invitation_number = Column(String(30), unique=True, nullable=False, index=True)

    # Parties
    visitor_id = Column(Integer, nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("vf_users.id"), nullable=False, index=True)
    visit_purpose_id = Column(Integer, nullable=True)
    location_id = Column(Integer, ForeignKey("vf_locations.id"), nullable=True, index=True)
    time_slot_id = Column(Integer, ForeignKey("vf_time_slots.id"), nullable=True)

    # Details
    status = Column(SQLEnum(InvitationStatus), default=InvitationStatus.DRAFT, nullable=False, index=True)
    type = Column(SQLEnum(InvitationType), default=InvitationType.SINGLE, nullable=False)
    subject = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=True)
    special_instructions = Column(String(500), nullable=True)
    scheduled_start_time = Column(DateTime, nullable=False, index=True)
    scheduled_end_time = Column(DateTime, nullable=False)
    expected_visitor_count = Column(Integer, default=1, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)
    requires_escort = Column(Boolean, default=False, nullable=False)
    requires_badge = Column(Boolean, default=True, nullable=False)
    is_vip = Column(Boolean, default=False, nullable=False)

    # QR reference issued on approval
    qr_code = Column(String(500), nullable=True, index=True)

    # Lifecycle stamps
    sent_on = Column(DateTime, nullable=True)
    approved_on = Column(DateTime, nullable=True)
    approved_by = Column(Integer, nullable=True)
    approval_comments = Column(String(500), nullable=True)
    rejected_on = Column(DateTime, nullable=True)
    rejected_by = Column(Integer, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    checked_out_at = Column(DateTime, nullable=True)

    # Occupancy row this invitation reserved against on approval
    occupancy_log_id = Column(Integer, ForeignKey("vf_occupancy_logs.id"), nullable=True)

    version = Column(Integer, nullable=False)

    approvals = relationship(
        "InvitationApproval",
        back_populates="invitation",
        order_by="InvitationApproval.step_order",
        cascade="all, delete-orphan",
    )
    events = relationship(
        "InvitationEvent",
        back_populates="invitation",
        order_by="InvitationEvent.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def is_approved(self) -> bool:
        return self.status in (InvitationStatus.APPROVED, InvitationStatus.ACTIVE, InvitationStatus.COMPLETED)

    @property
    def can_be_modified(self) -> bool:
        return self.status in (InvitationStatus.DRAFT, InvitationStatus.SUBMITTED)

    @property
    def holds_capacity(self) -> bool:
        return self.status in HOLDING_STATUSES and self.occupancy_log_id is not None

    @property
    def visit_duration_hours(self) -> float:
        return (self.scheduled_end_time - self.scheduled_start_time).total_seconds() / 3600

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Pure predicate: an approved or active visit whose scheduled end has passed."""
        now = now or utcnow()
        return self.status in LEGAL_SOURCES["expire"] and now > self.scheduled_end_time

    def can_be_approved(self) -> bool:
        return self.status in LEGAL_SOURCES["approve"]

    def can_be_cancelled(self) -> bool:
        return self.status in LEGAL_SOURCES["cancel"]

    def can(self, transition: str) -> bool:
        return self.status in LEGAL_SOURCES[transition]

    def has_capacity_conflict(self, current_occupancy: int, max_capacity: int) -> bool:
        return current_occupancy + self.expected_visitor_count > max_capacity

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def ensure_can(self, transition: str, message: str = "The operation is not allowed in the current state.") -> None:
        if self.status not in LEGAL_SOURCES[transition]:
            raise IllegalTransitionError(
                f"{message} (invitation {self.invitation_number} is {self.status.value})",
                self.status,
            )

    def submit(self, submitted_by: int) -> None:
        self.ensure_can("submit", "Only draft invitations can be submitted.")
        self.status = InvitationStatus.SUBMITTED
        self.sent_on = utcnow()
        self.touch(submitted_by)

    def start_review(self, reviewed_by: int) -> None:
        self.ensure_can("start_review", "Only submitted invitations can be moved under review.")
        self.status = InvitationStatus.UNDER_REVIEW
        self.touch(reviewed_by)

    def approve(self, approved_by: int, comments: Optional[str] = None) -> None:
        self.ensure_can("approve", "This invitation cannot be approved in its current state.")
        self.status = InvitationStatus.APPROVED
        self.approved_on = utcnow()
        self.approved_by = approved_by
        self.approval_comments = comments.strip() if comments else None
        self.touch(approved_by)

    def reject(self, rejected_by: int, reason: Optional[str] = None) -> None:
        # No source-state guard: rejection is accepted from every state
        self.status = InvitationStatus.REJECTED
        self.rejected_on = utcnow()
        self.rejected_by = rejected_by
        self.rejection_reason = reason.strip() if reason else None
        self.touch(rejected_by)

    def check_in(self, checked_in_by: int) -> None:
        self.ensure_can("check_in", "Only approved invitations can be checked in.")
        self.status = InvitationStatus.ACTIVE
        self.checked_in_at = utcnow()
        self.touch(checked_in_by)

    def check_out(self, checked_out_by: int) -> None:
        self.ensure_can("check_out", "Only active invitations can be checked out.")
        self.status = InvitationStatus.COMPLETED
        self.checked_out_at = utcnow()
        self.touch(checked_out_by)

    def cancel(self, cancelled_by: int) -> None:
        self.ensure_can("cancel", "This invitation cannot be cancelled.")
        self.status = InvitationStatus.CANCELLED
        self.touch(cancelled_by)

    def expire(self, expired_by: Optional[int], now: Optional[datetime] = None) -> None:
        if not self.is_expired(now):
            raise IllegalTransitionError(
                f"Invitation {self.invitation_number} is not past its scheduled end or is not approved/active.",
                self.status,
            )
        self.status = InvitationStatus.EXPIRED
        self.touch(expired_by)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_invitation(self, now: Optional[datetime] = None) -> List[str]:
        errors = []
        now = now or utcnow()

        if not self.subject or not self.subject.strip():
            errors.append("Subject is required.")

        if self.scheduled_start_time is None or self.scheduled_end_time is None:
            errors.append("Scheduled start and end times are required.")
        else:
            if self.scheduled_start_time >= self.scheduled_end_time:
                errors.append("Scheduled end time must be after start time.")
            if self.scheduled_start_time < now - timedelta(minutes=settings.past_start_tolerance_minutes):
                errors.append("Scheduled start time cannot be in the past.")
            if self.visit_duration_hours > settings.max_visit_duration_hours:
                errors.append(f"Visit duration cannot exceed {settings.max_visit_duration_hours} hours.")

        if self.expected_visitor_count is None or self.expected_visitor_count <= 0:
            errors.append("Expected visitor count must be greater than 0.")
        elif self.type == InvitationType.GROUP and self.expected_visitor_count <= 1:
            errors.append("Group invitations must have more than 1 expected visitor.")

        return errors

    def update_qr_code(self, qr_code: str) -> None:
        self.qr_code = qr_code
        self.touch()

    def get_summary(self) -> str:
        return f"{self.subject} ({self.invitation_number}) on {self.scheduled_start_time:%Y-%m-%d %H:%M}"

    def __repr__(self):
        return f"<Invitation(id={self.id}, number='{self.invitation_number}', status='{self.status}')>"


class InvitationEventTypes:
    """Named events emitted on every transition"""
    CREATED = "Created"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "UnderReview"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"
    CHECKED_IN = "CheckedIn"
    CHECKED_OUT = "CheckedOut"
    EXPIRED = "Expired"
    MODIFIED = "Modified"
    ESCALATED = "Escalated"
    QR_CODE_GENERATED = "QrCodeGenerated"
    DELETED = "Deleted"


class InvitationEvent(AuditMixin, Base):
    """Timeline entry for an invitation; read by the notification layer."""
    __tablename__ = "vf_invitation_events"

    id = Column(Integer, primary_key=True, index=True)
    invitation_id = Column(Integer, ForeignKey("vf_invitations.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    triggered_by = Column(Integer, nullable=True)
    event_data = Column(Text, nullable=True)  # JSON string
    event_timestamp = Column(DateTime, default=utcnow, nullable=False)

    invitation = relationship("Invitation", back_populates="events")

    def __repr__(self):
        return f"<InvitationEvent(invitation={self.invitation_id}, type='{self.event_type}')>"
