from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
import logging

from visitflow.core.concurrency import run_with_retry
from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user, get_current_admin
from visitflow.core.errors import ValidationFailedError
from visitflow.models.time_slot import TimeSlot
from visitflow.models.user import User
from visitflow.schemas.booking import BookingCreate, BookingCancel, BookingResponse
from visitflow.schemas.common import to_naive_utc
from visitflow.schemas.time_slot import (
    TimeSlotCreate,
    TimeSlotUpdate,
    TimeSlotResponse,
    AvailableTimeSlotResponse,
)
from visitflow.services.booking import TimeSlotBookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/time-slots", tags=["Time Slots"])


@router.get("/", response_model=List[TimeSlotResponse])
def list_time_slots(
    location_id: Optional[int] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(TimeSlot).filter(TimeSlot.is_deleted.is_(False))
    if not include_inactive:
        query = query.filter(TimeSlot.is_active.is_(True))
    if location_id is not None:
        query = query.filter(TimeSlot.location_id == location_id)
    slots = query.order_by(TimeSlot.display_order, TimeSlot.start_time).all()
    return [TimeSlotResponse.from_slot(slot) for slot in slots]


@router.get("/available", response_model=List[AvailableTimeSlotResponse])
def get_available_time_slots(
    day: date = Query(..., alias="date", description="Date to check (YYYY-MM-DD)"),
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Slots active on a date with their remaining booking capacity.
    Fully booked slots carry the next date within the search window that has room.
    """
    return TimeSlotBookingService(db).get_available_slots(day, location_id)


@router.get("/conflicts", response_model=List[TimeSlotResponse])
def get_conflicting_time_slots(
    start: datetime,
    end: datetime,
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Slots whose buffered window overlaps [start, end)."""
    slots = TimeSlotBookingService(db).get_conflicting_slots(to_naive_utc(start), to_naive_utc(end), location_id)
    return [TimeSlotResponse.from_slot(slot) for slot in slots]


@router.get("/{time_slot_id}", response_model=TimeSlotResponse)
def get_time_slot(
    time_slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return TimeSlotResponse.from_slot(TimeSlotBookingService(db).get_slot(time_slot_id))


@router.post("/", response_model=TimeSlotResponse, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    slot_data: TimeSlotCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    slot = TimeSlot(**slot_data.model_dump(), is_active=True)
    errors = slot.validate_time_slot()
    if errors:
        raise ValidationFailedError(errors)

    slot.set_created_by(current_user.id)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    logger.info(f"Time slot created: {slot.get_display_string()}")
    return TimeSlotResponse.from_slot(slot)


@router.put("/{time_slot_id}", response_model=TimeSlotResponse)
def update_time_slot(
    time_slot_id: int,
    slot_data: TimeSlotUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    slot = TimeSlotBookingService(db).get_slot(time_slot_id)
    for field, value in slot_data.model_dump(exclude_unset=True).items():
        setattr(slot, field, value)

    errors = slot.validate_time_slot()
    if errors:
        db.rollback()
        raise ValidationFailedError(errors)

    slot.touch(current_user.id)
    db.commit()
    db.refresh(slot)
    return TimeSlotResponse.from_slot(slot)


@router.delete("/{time_slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_time_slot(
    time_slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """Soft delete; bookings keep referencing the slot."""
    slot = TimeSlotBookingService(db).get_slot(time_slot_id)
    slot.soft_delete(current_user.id)
    db.commit()
    logger.info(f"Time slot {time_slot_id} deleted by {current_user.username}")
    return None


# ============================================================================
# Bookings
# ============================================================================

@router.get("/{time_slot_id}/bookings", response_model=List[BookingResponse])
def list_time_slot_bookings(
    time_slot_id: int,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = TimeSlotBookingService(db)
    service.get_slot(time_slot_id)
    return service.list_bookings(time_slot_id, day)


@router.post("/{time_slot_id}/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_time_slot(
    time_slot_id: int,
    booking_data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = TimeSlotBookingService(db)
    return run_with_retry(
        db,
        lambda: service.book(
            time_slot_id,
            booking_data.booking_date,
            booking_data.visitor_count,
            current_user.id,
            notes=booking_data.notes,
            confirm=booking_data.confirm,
            is_vip_request=booking_data.is_vip_request,
        ),
        f"book time slot {time_slot_id}",
    )


@router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = TimeSlotBookingService(db)
    return run_with_retry(db, lambda: service.confirm(booking_id, current_user.id), f"confirm booking {booking_id}")


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    cancel_data: BookingCancel,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = TimeSlotBookingService(db)
    return run_with_retry(
        db, lambda: service.cancel(booking_id, current_user.id, cancel_data.reason), f"cancel booking {booking_id}"
    )


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = TimeSlotBookingService(db)
    return run_with_retry(db, lambda: service.complete(booking_id, current_user.id), f"complete booking {booking_id}")
