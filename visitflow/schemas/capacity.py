from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import date, datetime

from visitflow.schemas.common import to_naive_utc


class AlternativeSlot(BaseModel):
    """A future slot start with room for the requested visitors"""
    time_slot_id: int
    time_slot_name: str
    date_time: datetime
    available_slots: int


class CapacityResult(BaseModel):
    """Admission decision with the capacity breakdown it was based on"""
    is_admitted: bool
    current_occupancy: int = Field(..., description="Checked-in plus reserved visitors, excluding any excluded invitation")
    max_capacity: int
    available_slots: int = Field(..., description="max_capacity minus occupancy; negative when over capacity")
    occupancy_percentage: float = Field(..., description="Occupancy after admitting the request")
    is_warning_level: bool
    reasons: list[str] = Field(default_factory=list)
    time_slot_id: Optional[int] = None
    location_id: Optional[int] = None
    occupancy_log_id: Optional[int] = None
    vip_override: bool = False
    alternative_slots: list[AlternativeSlot] = Field(default_factory=list)


class CapacityValidationRequest(BaseModel):
    """Schema for an ad-hoc capacity check"""
    date_time: datetime = Field(..., description="Proposed visit start")
    end_time: Optional[datetime] = Field(None, description="Proposed visit end; enables the buffer-zone check")
    location_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    expected_visitors: int = Field(default=1, ge=0, description="0 reads current state and always admits")
    is_vip_request: bool = False
    exclude_invitation_id: Optional[int] = None

    @field_validator("date_time", "end_time")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class OccupancyLogResponse(BaseModel):
    """Schema for an occupancy row with derived fields"""
    id: int
    date: date
    time_slot_id: Optional[int] = None
    location_id: Optional[int] = None
    current_count: int
    reserved_count: int
    max_capacity: int
    available_capacity: int
    occupancy_percentage: float
    is_warning_level: bool
    is_over_capacity: bool
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_log(cls, log) -> "OccupancyLogResponse":
        return cls(
            id=log.id,
            date=log.date,
            time_slot_id=log.time_slot_id,
            location_id=log.location_id,
            current_count=log.current_count,
            reserved_count=log.reserved_count,
            max_capacity=log.max_capacity,
            available_capacity=log.get_calculated_available_capacity(),
            occupancy_percentage=log.get_calculated_occupancy_percentage(),
            is_warning_level=log.is_at_warning_level(),
            is_over_capacity=log.is_over_capacity(),
            last_updated=log.last_updated,
        )
