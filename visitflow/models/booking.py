"""
TimeSlotBooking Model
Concrete reservation of a time slot on a date, optionally linked to an invitation
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from visitflow.core.database import Base
from visitflow.core.errors import IllegalTransitionError
from visitflow.models.mixins import SoftDeleteMixin, utcnow
import enum


class BookingStatus(str, enum.Enum):
    """Enum for booking status"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class TimeSlotBooking(SoftDeleteMixin, Base):
    __tablename__ = "vf_time_slot_bookings"

    id = Column(Integer, primary_key=True, index=True)
    time_slot_id = Column(Integer, ForeignKey("vf_time_slots.id"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False, index=True)
    invitation_id = Column(Integer, ForeignKey("vf_invitations.id"), nullable=True, index=True)
    visitor_count = Column(Integer, default=1, nullable=False)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False)
    notes = Column(String(500), nullable=True)

    booked_by = Column(Integer, nullable=False)
    booked_on = Column(DateTime, default=utcnow, nullable=False)
    cancelled_by = Column(Integer, nullable=True)
    cancelled_on = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    version = Column(Integer, nullable=False)

    time_slot = relationship("TimeSlot")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active_booking(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def can_be_cancelled(self) -> bool:
        return self.status not in (BookingStatus.CANCELLED, BookingStatus.COMPLETED)

    def cancel(self, cancelled_by: int, reason: Optional[str] = None) -> None:
        if not self.can_be_cancelled:
            raise IllegalTransitionError("This booking cannot be cancelled.", self.status)
        self.status = BookingStatus.CANCELLED
        self.cancelled_on = utcnow()
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason.strip() if reason else None
        self.touch(cancelled_by)

    def confirm(self, confirmed_by: int) -> None:
        if self.status != BookingStatus.PENDING:
            raise IllegalTransitionError("Only pending bookings can be confirmed.", self.status)
        self.status = BookingStatus.CONFIRMED
        self.touch(confirmed_by)

    def complete(self, completed_by: int) -> None:
        if self.status != BookingStatus.CONFIRMED:
            raise IllegalTransitionError("Only confirmed bookings can be completed.", self.status)
        self.status = BookingStatus.COMPLETED
        self.touch(completed_by)

    def validate_booking(self, today: Optional[date] = None, enforce_slot_capacity: bool = True) -> List[str]:
        errors = []
        today = today or utcnow().date()

        if self.booking_date is None:
            errors.append("Booking date is required.")
        elif self.booking_date < today:
            errors.append("Booking date cannot be in the past.")
        if self.visitor_count is None or self.visitor_count <= 0:
            errors.append("Visitor count must be greater than 0.")

        slot = self.time_slot
        if slot is not None:
            if not slot.is_active or slot.is_deleted:
                errors.append("The selected time slot is not active.")
            if enforce_slot_capacity and self.visitor_count and self.visitor_count > slot.max_visitors:
                errors.append(
                    f"Visitor count ({self.visitor_count}) exceeds time slot capacity ({slot.max_visitors})."
                )
            if self.booking_date is not None and not slot.is_active_on_day(self.booking_date):
                errors.append(f"The selected time slot is not active on {self.booking_date:%A}.")

        return errors

    def get_summary(self) -> str:
        slot_name = self.time_slot.name if self.time_slot else "Time Slot"
        return f"{slot_name} on {self.booking_date:%Y-%m-%d} for {self.visitor_count} visitor(s) - {self.status.value}"

    def __repr__(self):
        return f"<TimeSlotBooking(id={self.id}, slot={self.time_slot_id}, date={self.booking_date}, status='{self.status}')>"
