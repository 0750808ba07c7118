from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime

from visitflow.models.invitation import InvitationStatus, InvitationType
from visitflow.schemas.capacity import CapacityResult
from visitflow.schemas.common import to_naive_utc


class InvitationBase(BaseModel):
    """Base schema for Invitation with common fields"""
    visitor_id: int = Field(..., description="Visitor being invited")
    subject: str = Field(..., min_length=1, max_length=200)
    message: Optional[str] = Field(None, max_length=1000)
    special_instructions: Optional[str] = Field(None, max_length=500)
    type: InvitationType = InvitationType.SINGLE
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    expected_visitor_count: int = Field(default=1, ge=1)
    visit_purpose_id: Optional[int] = None
    location_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    requires_approval: bool = True
    requires_escort: bool = False
    requires_badge: bool = True
    is_vip: bool = Field(default=False, description="VIP visits may exceed capacity")

    @field_validator("scheduled_start_time", "scheduled_end_time")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class InvitationCreate(InvitationBase):
    """Schema for creating a draft invitation; end-before-start is reported by the domain validation"""
    pass


class InvitationUpdate(BaseModel):
    """Schema for editing a Draft or Submitted invitation"""
    subject: Optional[str] = Field(None, min_length=1, max_length=200)
    message: Optional[str] = Field(None, max_length=1000)
    special_instructions: Optional[str] = Field(None, max_length=500)
    type: Optional[InvitationType] = None
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    expected_visitor_count: Optional[int] = Field(None, ge=1)
    visit_purpose_id: Optional[int] = None
    location_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    requires_escort: Optional[bool] = None
    requires_badge: Optional[bool] = None
    is_vip: Optional[bool] = None

    @field_validator(
        "subject",
        "type",
        "scheduled_start_time",
        "scheduled_end_time",
        "expected_visitor_count",
        "requires_escort",
        "requires_badge",
        "is_vip",
        mode="before",
    )
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    @field_validator("scheduled_start_time", "scheduled_end_time")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class InvitationSubmit(BaseModel):
    """Submit request; approver ids configure the approval trail in order"""
    approver_ids: list[int] = Field(default_factory=list)


class InvitationDecision(BaseModel):
    """Approve or reject comments"""
    comments: Optional[str] = Field(None, max_length=500)


class TransitionReason(BaseModel):
    """Optional reason for reject and cancel"""
    reason: Optional[str] = Field(None, max_length=500)


class CheckInRequest(BaseModel):
    """Reference may be an invitation id, an invitation number or a QR reference"""
    reference: str = Field(..., min_length=1, max_length=500)


class InvitationResponse(BaseModel):
    """Schema for invitation response"""
    id: int
    invitation_number: str
    visitor_id: int
    host_id: int
    visit_purpose_id: Optional[int] = None
    location_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    status: InvitationStatus
    type: InvitationType
    subject: str
    message: Optional[str] = None
    special_instructions: Optional[str] = None
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    expected_visitor_count: int
    requires_approval: bool
    requires_escort: bool
    requires_badge: bool
    is_vip: bool
    qr_code: Optional[str] = None
    sent_on: Optional[datetime] = None
    approved_on: Optional[datetime] = None
    approved_by: Optional[int] = None
    approval_comments: Optional[str] = None
    rejected_on: Optional[datetime] = None
    rejected_by: Optional[int] = None
    rejection_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    occupancy_log_id: Optional[int] = None
    can_be_modified: bool
    is_approved: bool
    visit_duration_hours: float
    created_on: datetime
    created_by: Optional[int] = None
    modified_on: Optional[datetime] = None
    modified_by: Optional[int] = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class InvitationCreateResponse(BaseModel):
    """Created draft plus the capacity check it passed"""
    message: str
    invitation: InvitationResponse
    capacity: Optional[CapacityResult] = None


class InvitationListResponse(BaseModel):
    """Schema for paginated invitation list"""
    total: int
    invitations: list[InvitationResponse]
    page: int
    page_size: int


class InvitationEventResponse(BaseModel):
    id: int
    invitation_id: int
    event_type: str
    description: str
    triggered_by: Optional[int] = None
    event_data: Optional[str] = None
    event_timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationGuards(BaseModel):
    """Read-only pre-checks for UI gating"""
    invitation_id: int
    status: InvitationStatus
    can_be_approved: bool
    can_be_cancelled: bool
    can_be_modified: bool
    is_expired: bool
