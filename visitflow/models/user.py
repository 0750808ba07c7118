from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from visitflow.core.database import Base
import enum


class UserRole(str, enum.Enum):
    """Enum for staff roles"""
    ADMINISTRATOR = "ADMINISTRATOR"
    HOST = "HOST"
    APPROVER = "APPROVER"
    RECEPTIONIST = "RECEPTIONIST"


class User(Base):
    """
    Staff user for authentication.
    Every lifecycle transition is stamped with the acting user's id.
    """
    __tablename__ = "vf_users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    ph_no = Column(String(20), nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.HOST, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMINISTRATOR

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
