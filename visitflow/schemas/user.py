from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime

from visitflow.models.user import UserRole


class UserBase(BaseModel):
    """Base schema for User with common fields"""
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    email: EmailStr = Field(..., description="Email address of the user")
    name: str = Field(..., min_length=1, max_length=255, description="Full name of the user")


class UserCreate(UserBase):
    """Schema for creating a new user"""
    ph_no: Optional[str] = Field(None, max_length=20, description="Phone number of the user")
    password: str = Field(..., min_length=8, description="Password (plain text, will be hashed)")
    role: UserRole = Field(default=UserRole.HOST, description="Staff role")


class UserResponse(UserBase):
    """Schema for user response"""
    id: int
    ph_no: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserLogin(BaseModel):
    """Schema for login request"""
    username: str = Field(..., description="Username for authentication")
    password: str = Field(..., description="Password for authentication (plain text)")


class UserLoginResponse(BaseModel):
    """Schema for login response with token and user info"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class TokenData(BaseModel):
    """Schema for token payload data"""
    username: Optional[str] = None
    user_id: Optional[int] = None
