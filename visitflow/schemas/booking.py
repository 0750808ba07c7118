from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import date, datetime

from visitflow.models.booking import BookingStatus


class BookingCreate(BaseModel):
    """Schema for a standalone slot booking"""
    booking_date: date
    visitor_count: int = Field(default=1, ge=1)
    notes: Optional[str] = Field(None, max_length=500)
    confirm: bool = Field(default=True, description="Create as Confirmed (reserves capacity) rather than Pending")
    is_vip_request: bool = Field(default=False, description="Allow exceeding the slot's max visitors")


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    """Schema for booking response"""
    id: int
    time_slot_id: int
    booking_date: date
    invitation_id: Optional[int] = None
    visitor_count: int
    status: BookingStatus
    notes: Optional[str] = None
    booked_by: int
    booked_on: datetime
    cancelled_by: Optional[int] = None
    cancelled_on: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    version: int

    model_config = ConfigDict(from_attributes=True)
