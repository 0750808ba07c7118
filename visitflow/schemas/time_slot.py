from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional
from datetime import date, datetime, time


def _normalize_days(v):
    if v is None:
        return v
    if isinstance(v, (list, tuple, set)):
        v = ",".join(str(int(day)) for day in sorted(v))
    parts = [part.strip() for part in str(v).split(",") if part.strip()]
    days = []
    for part in parts:
        if not part.isdigit() or not 0 <= int(part) <= 7:
            raise ValueError("Active days must be numbers 1-7 (1=Monday, 7=Sunday)")
        days.append(7 if int(part) == 0 else int(part))
    if not days:
        raise ValueError("Active days must be specified")
    return ",".join(str(day) for day in sorted(set(days)))


class TimeSlotBase(BaseModel):
    """Base schema for TimeSlot with common fields"""
    name: str = Field(..., min_length=1, max_length=100)
    start_time: time
    end_time: time
    max_visitors: int = Field(default=50, ge=1)
    active_days: str = Field(default="1,2,3,4,5", description="Comma-separated weekday numbers, 1=Monday ... 7=Sunday")
    buffer_minutes: int = Field(default=15, ge=0)
    location_id: Optional[int] = Field(None, description="NULL applies the slot to all locations")
    display_order: int = Field(default=1, ge=0)

    @field_validator("active_days", mode="before")
    @classmethod
    def normalize_active_days(cls, v):
        return _normalize_days(v)


class TimeSlotCreate(TimeSlotBase):
    """Schema for creating a time slot"""

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class TimeSlotUpdate(BaseModel):
    """Schema for updating a time slot; the window is re-checked on the merged row"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_visitors: Optional[int] = Field(None, ge=1)
    active_days: Optional[str] = None
    buffer_minutes: Optional[int] = Field(None, ge=0)
    location_id: Optional[int] = None
    display_order: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("active_days", mode="before")
    @classmethod
    def normalize_active_days(cls, v):
        return _normalize_days(v)


class TimeSlotResponse(TimeSlotBase):
    """Schema for time slot response"""
    id: int
    is_active: bool
    duration_minutes: int
    display_string: str
    created_on: datetime
    modified_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_slot(cls, slot) -> "TimeSlotResponse":
        return cls(
            id=slot.id,
            name=slot.name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            max_visitors=slot.max_visitors,
            active_days=slot.active_days,
            buffer_minutes=slot.buffer_minutes,
            location_id=slot.location_id,
            display_order=slot.display_order,
            is_active=slot.is_active,
            duration_minutes=slot.duration_minutes,
            display_string=slot.get_display_string(),
            created_on=slot.created_on,
            modified_on=slot.modified_on,
        )


class AvailableTimeSlotResponse(BaseModel):
    """A slot on a given date with its remaining booking capacity"""
    id: int
    name: str
    start_time: time
    end_time: time
    max_visitors: int
    location_id: Optional[int] = None
    current_bookings: int
    available_slots: int
    is_fully_booked: bool
    next_available_date: Optional[date] = None
    display_string: str
