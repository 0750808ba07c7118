from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime


class LocationBase(BaseModel):
    """Base schema for Location with common fields"""
    name: str = Field(..., min_length=1, max_length=100, description="Unique location name")
    description: Optional[str] = Field(None, max_length=500)
    max_occupancy: int = Field(default=100, ge=1, description="Occupancy ceiling for the location")


class LocationCreate(LocationBase):
    """Schema for creating a location"""
    pass


class LocationUpdate(BaseModel):
    """Schema for updating a location"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    max_occupancy: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class LocationResponse(LocationBase):
    """Schema for location response"""
    id: int
    is_active: bool
    created_on: datetime
    modified_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
