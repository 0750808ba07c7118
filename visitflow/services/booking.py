"""
Time slot bookings.
Standalone bookings reserve on their slot's occupancy row while Confirmed. Bookings linked to an
invitation only mirror the invitation's own hold and never touch the counters.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from visitflow.core.config import settings
from visitflow.core.errors import IllegalTransitionError, NotFoundError, ValidationFailedError
from visitflow.models.booking import TimeSlotBooking, BookingStatus, ACTIVE_BOOKING_STATUSES
from visitflow.models.invitation import Invitation
from visitflow.models.location import Location
from visitflow.models.mixins import utcnow
from visitflow.models.time_slot import TimeSlot
from visitflow.schemas.time_slot import AvailableTimeSlotResponse
from visitflow.services.capacity import resolve_capacity, slot_booked_count
from visitflow.services.occupancy import OccupancyTracker

logger = logging.getLogger(__name__)


class TimeSlotBookingService:
    def __init__(self, db: Session):
        self.db = db
        self.tracker = OccupancyTracker(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_slot(self, time_slot_id: int) -> TimeSlot:
        slot = self.db.query(TimeSlot).filter(
            TimeSlot.id == time_slot_id,
            TimeSlot.is_deleted.is_(False)
        ).first()
        if slot is None:
            raise NotFoundError(f"Time slot {time_slot_id} not found")
        return slot

    def get_booking(self, booking_id: int, lock: bool = False) -> TimeSlotBooking:
        query = self.db.query(TimeSlotBooking).filter(
            TimeSlotBooking.id == booking_id,
            TimeSlotBooking.is_deleted.is_(False)
        )
        if lock:
            query = query.with_for_update()
        booking = query.first()
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def active_booking_for_invitation(self, invitation_id: int) -> Optional[TimeSlotBooking]:
        return self.db.query(TimeSlotBooking).filter(
            TimeSlotBooking.invitation_id == invitation_id,
            TimeSlotBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            TimeSlotBooking.is_deleted.is_(False)
        ).first()

    def booked_count(self, time_slot_id: int, booking_date: date) -> int:
        return slot_booked_count(self.db, time_slot_id, booking_date)

    def list_bookings(self, time_slot_id: int, booking_date: Optional[date] = None) -> List[TimeSlotBooking]:
        query = self.db.query(TimeSlotBooking).filter(
            TimeSlotBooking.time_slot_id == time_slot_id,
            TimeSlotBooking.is_deleted.is_(False)
        )
        if booking_date is not None:
            query = query.filter(TimeSlotBooking.booking_date == booking_date)
        return query.order_by(TimeSlotBooking.booking_date, TimeSlotBooking.id).all()

    # ------------------------------------------------------------------
    # Standalone bookings
    # ------------------------------------------------------------------

    def book(
        self,
        time_slot_id: int,
        booking_date: date,
        visitor_count: int,
        booked_by: int,
        notes: Optional[str] = None,
        confirm: bool = True,
        is_vip_request: bool = False,
        today: Optional[date] = None,
    ) -> TimeSlotBooking:
        """
        Book a slot on a date.

        Raises:
            NotFoundError: Unknown slot
            ValidationFailedError: Past date, inactive slot or weekday, or not enough room
        """
        slot = self.get_slot(time_slot_id)
        booking = TimeSlotBooking(
            time_slot_id=slot.id,
            booking_date=booking_date,
            visitor_count=visitor_count,
            status=BookingStatus.CONFIRMED if confirm else BookingStatus.PENDING,
            notes=notes,
            booked_by=booked_by,
            booked_on=utcnow(),
        )
        booking.time_slot = slot
        booking.set_created_by(booked_by)

        errors = booking.validate_booking(today=today, enforce_slot_capacity=not is_vip_request)
        if errors:
            raise ValidationFailedError(errors)

        already_booked = self.booked_count(slot.id, booking_date)
        if already_booked + visitor_count > slot.max_visitors:
            if not is_vip_request:
                raise ValidationFailedError([
                    f"Time slot '{slot.name}' has only {max(slot.max_visitors - already_booked, 0)} "
                    f"place(s) left on {booking_date}."
                ])
            logger.warning(f"VIP booking exceeds time slot {slot.id} on {booking_date}: "
                           f"{already_booked + visitor_count}/{slot.max_visitors}")

        self.db.add(booking)
        self.db.flush()

        if booking.status == BookingStatus.CONFIRMED:
            self._reserve(booking)

        logger.info(f"Booking {booking.id} created: {booking.get_summary()}")
        return booking

    def confirm(self, booking_id: int, confirmed_by: int) -> TimeSlotBooking:
        booking = self.get_booking(booking_id, lock=True)
        self._ensure_standalone(booking)
        booking.confirm(confirmed_by)
        self._reserve(booking)
        logger.info(f"Booking {booking.id} confirmed by {confirmed_by}")
        return booking

    def cancel(self, booking_id: int, cancelled_by: int, reason: Optional[str] = None) -> TimeSlotBooking:
        booking = self.get_booking(booking_id, lock=True)
        self._ensure_standalone(booking)
        was_confirmed = booking.status == BookingStatus.CONFIRMED
        booking.cancel(cancelled_by, reason)
        if was_confirmed:
            self._release(booking)
        logger.info(f"Booking {booking.id} cancelled by {cancelled_by}")
        return booking

    def complete(self, booking_id: int, completed_by: int) -> TimeSlotBooking:
        booking = self.get_booking(booking_id, lock=True)
        self._ensure_standalone(booking)
        booking.complete(completed_by)
        self._release(booking)
        logger.info(f"Booking {booking.id} completed by {completed_by}")
        return booking

    def _ensure_standalone(self, booking: TimeSlotBooking) -> None:
        if booking.invitation_id is not None:
            raise IllegalTransitionError(
                f"Booking {booking.id} follows invitation {booking.invitation_id} and changes with it.",
                booking.status,
            )

    def _occupancy_log(self, booking: TimeSlotBooking):
        slot = booking.time_slot
        location = self.db.get(Location, slot.location_id) if slot.location_id else None
        return self.tracker.get_or_create_log(
            booking.booking_date, slot.id, slot.location_id, resolve_capacity(slot, location), lock=True
        )

    def _reserve(self, booking: TimeSlotBooking) -> None:
        self.tracker.reserve(self._occupancy_log(booking), booking.visitor_count)

    def _release(self, booking: TimeSlotBooking) -> None:
        self.tracker.release_reservation(self._occupancy_log(booking), booking.visitor_count)

    # ------------------------------------------------------------------
    # Invitation-linked bookings
    # ------------------------------------------------------------------

    def record_for_invitation(self, invitation: Invitation, time_slot_id: int, actor_id: int) -> TimeSlotBooking:
        """Confirmed booking mirroring an approved invitation; an open one is refreshed, never duplicated."""
        booking = self.active_booking_for_invitation(invitation.id)
        booking_date = invitation.scheduled_start_time.date()
        if booking is not None:
            booking.time_slot_id = time_slot_id
            booking.booking_date = booking_date
            booking.visitor_count = invitation.expected_visitor_count
            if booking.status == BookingStatus.PENDING:
                booking.confirm(actor_id)
            return booking

        booking = TimeSlotBooking(
            time_slot_id=time_slot_id,
            booking_date=booking_date,
            invitation_id=invitation.id,
            visitor_count=invitation.expected_visitor_count,
            status=BookingStatus.CONFIRMED,
            notes=f"Invitation {invitation.invitation_number}",
            booked_by=actor_id,
            booked_on=utcnow(),
        )
        booking.set_created_by(actor_id)
        self.db.add(booking)
        self.db.flush()
        logger.info(f"Booking {booking.id} recorded for invitation {invitation.invitation_number}")
        return booking

    def close_for_invitation(
        self,
        invitation: Invitation,
        actor_id: Optional[int],
        completed: bool = False,
        reason: Optional[str] = None,
    ) -> Optional[TimeSlotBooking]:
        booking = self.active_booking_for_invitation(invitation.id)
        if booking is None:
            return None
        if completed and booking.status == BookingStatus.CONFIRMED:
            booking.complete(actor_id)
        else:
            booking.cancel(actor_id, reason)
        return booking

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def _slots_for(self, day: date, location_id: Optional[int]) -> List[TimeSlot]:
        query = self.db.query(TimeSlot).filter(
            TimeSlot.is_active.is_(True),
            TimeSlot.is_deleted.is_(False)
        )
        if location_id is not None:
            query = query.filter(or_(TimeSlot.location_id == location_id, TimeSlot.location_id.is_(None)))
        slots = query.order_by(TimeSlot.display_order, TimeSlot.start_time).all()
        return [slot for slot in slots if slot.is_active_on_day(day)]

    def next_available_date(self, slot: TimeSlot, after: date, visitor_count: int = 1) -> Optional[date]:
        for offset in range(1, settings.next_available_search_days + 1):
            day = after + timedelta(days=offset)
            if slot.is_active_on_day(day) and self.booked_count(slot.id, day) + visitor_count <= slot.max_visitors:
                return day
        return None

    def get_available_slots(self, day: date, location_id: Optional[int] = None) -> List[AvailableTimeSlotResponse]:
        results = []
        for slot in self._slots_for(day, location_id):
            booked = self.booked_count(slot.id, day)
            available = max(slot.max_visitors - booked, 0)
            fully_booked = available == 0
            results.append(AvailableTimeSlotResponse(
                id=slot.id,
                name=slot.name,
                start_time=slot.start_time,
                end_time=slot.end_time,
                max_visitors=slot.max_visitors,
                location_id=slot.location_id,
                current_bookings=booked,
                available_slots=available,
                is_fully_booked=fully_booked,
                next_available_date=self.next_available_date(slot, day) if fully_booked else None,
                display_string=slot.get_display_string(),
            ))
        return results

    def get_conflicting_slots(
        self,
        start: datetime,
        end: datetime,
        location_id: Optional[int] = None,
    ) -> List[TimeSlot]:
        if end <= start:
            raise ValidationFailedError(["End time must be after start time."])
        return [slot for slot in self._slots_for(start.date(), location_id) if slot.has_time_conflict(start, end)]
