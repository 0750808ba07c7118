"""
Capacity validation.
Answers whether a proposed visit fits its (date, time slot, location) occupancy key.
Over-capacity is reported through CapacityResult, never raised; only malformed slot or
location references raise.
"""
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from visitflow.core.config import settings
from visitflow.core.errors import NotFoundError, ValidationFailedError
from visitflow.models.booking import TimeSlotBooking, ACTIVE_BOOKING_STATUSES
from visitflow.models.invitation import Invitation, InvitationStatus
from visitflow.models.location import Location
from visitflow.models.mixins import utcnow
from visitflow.models.time_slot import TimeSlot
from visitflow.schemas.capacity import AlternativeSlot, CapacityResult
from visitflow.services.occupancy import OccupancyTracker

logger = logging.getLogger(__name__)

VIP_OVERRIDE_REASON = "VIP override applied - capacity limit bypassed"


def resolve_capacity(slot: Optional[TimeSlot], location: Optional[Location]) -> int:
    """Ceiling for a key: the tighter of slot and location, whichever exist."""
    limits = []
    if slot is not None:
        limits.append(slot.max_visitors)
    if location is not None:
        limits.append(location.max_occupancy)
    return min(limits) if limits else settings.default_max_capacity


def slot_booked_count(
    db: Session,
    time_slot_id: int,
    booking_date,
    exclude_invitation_id: Optional[int] = None,
) -> int:
    """Visitors on active bookings for one slot and date, across every location."""
    query = db.query(func.coalesce(func.sum(TimeSlotBooking.visitor_count), 0)).filter(
        TimeSlotBooking.time_slot_id == time_slot_id,
        TimeSlotBooking.booking_date == booking_date,
        TimeSlotBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        TimeSlotBooking.is_deleted.is_(False)
    )
    if exclude_invitation_id is not None:
        query = query.filter(or_(
            TimeSlotBooking.invitation_id.is_(None),
            TimeSlotBooking.invitation_id != exclude_invitation_id
        ))
    return int(query.scalar() or 0)


def ensure_not_in_past(date_time: datetime, now: Optional[datetime] = None) -> None:
    """Caller-side gate: requests older than the grace window are refused before validation."""
    now = now or utcnow()
    if date_time < now - timedelta(minutes=settings.past_request_grace_minutes):
        raise ValidationFailedError(["Requested date and time cannot be in the past."])


class CapacityValidator:
    def __init__(self, db: Session):
        self.db = db
        self.tracker = OccupancyTracker(db)

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def get_location(self, location_id: Optional[int]) -> Optional[Location]:
        if location_id is None:
            return None
        location = self.db.query(Location).filter(
            Location.id == location_id,
            Location.is_deleted.is_(False)
        ).first()
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        if not location.is_active:
            raise ValidationFailedError([f"Location '{location.name}' is not active."])
        return location

    def candidate_slots(self, day, location_id: Optional[int]) -> List[TimeSlot]:
        """
        Active slots for a day, location-scoped slots ahead of all-location slots.
        Without a location only all-location slots apply.
        """
        query = self.db.query(TimeSlot).filter(
            TimeSlot.is_active.is_(True),
            TimeSlot.is_deleted.is_(False)
        )
        if location_id is None:
            query = query.filter(TimeSlot.location_id.is_(None))
        else:
            query = query.filter(or_(TimeSlot.location_id == location_id, TimeSlot.location_id.is_(None)))

        slots = [slot for slot in query.order_by(TimeSlot.display_order, TimeSlot.start_time, TimeSlot.id).all()
                 if slot.is_active_on_day(day)]
        return sorted(slots, key=lambda slot: slot.location_id is None)

    def resolve_slot(
        self,
        date_time: datetime,
        location_id: Optional[int],
        time_slot_id: Optional[int] = None,
    ) -> Optional[TimeSlot]:
        if time_slot_id is not None:
            slot = self.db.query(TimeSlot).filter(
                TimeSlot.id == time_slot_id,
                TimeSlot.is_deleted.is_(False)
            ).first()
            if slot is None:
                raise NotFoundError(f"Time slot {time_slot_id} not found")
            if not slot.is_active:
                raise ValidationFailedError([f"Time slot '{slot.name}' is not active."])
            if not slot.is_active_on_day(date_time):
                raise ValidationFailedError([f"Time slot '{slot.name}' is not active on {date_time:%A}."])
            if slot.location_id is not None and location_id is not None and slot.location_id != location_id:
                raise ValidationFailedError([f"Time slot '{slot.name}' belongs to a different location."])
            return slot

        for slot in self.candidate_slots(date_time.date(), location_id):
            if slot.contains_time(date_time):
                return slot
        return None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(
        self,
        date_time: datetime,
        expected_visitors: int = 1,
        location_id: Optional[int] = None,
        time_slot_id: Optional[int] = None,
        is_vip_request: bool = False,
        exclude_invitation_id: Optional[int] = None,
        end_time: Optional[datetime] = None,
        include_alternatives: bool = True,
        lock: bool = False,
    ) -> CapacityResult:
        """
        Decide whether `expected_visitors` fit at `date_time`.

        Args:
            date_time: Proposed visit start (naive UTC)
            expected_visitors: Visitors to admit; 0 reads the current state and always admits
            location_id: Optional location scope
            time_slot_id: Explicit slot; otherwise the slot containing date_time is used
            is_vip_request: Capacity becomes advisory; buffer-zone conflicts still refuse
            exclude_invitation_id: Invitation whose own reservation is discounted (re-checks while editing)
            end_time: Proposed visit end; enables the buffer-zone rule
            include_alternatives: Suggest other slots when not admitted
            lock: Row-lock the occupancy row for a following reservation

        Returns:
            CapacityResult with the breakdown and reasons

        Raises:
            NotFoundError / ValidationFailedError: Unknown or unusable slot or location
        """
        location = self.get_location(location_id)
        slot = self.resolve_slot(date_time, location_id, time_slot_id)
        if slot is not None and lock:
            # Serializes admissions that land on different occupancy rows of one slot
            self.db.query(TimeSlot).filter(TimeSlot.id == slot.id).with_for_update().first()
        max_capacity = resolve_capacity(slot, location)

        log = self.tracker.get_or_create_log(
            date_time.date(),
            slot.id if slot else None,
            location_id,
            max_capacity,
            lock=lock,
        )

        occupied = log.occupied_count
        if exclude_invitation_id is not None:
            occupied -= self._excluded_contribution(exclude_invitation_id, log.id)
        occupied = max(0, occupied)
        available = max_capacity - occupied

        if slot is not None:
            # Bookings on the slot from other locations share its visitor limit
            booked = slot_booked_count(self.db, slot.id, date_time.date(), exclude_invitation_id)
            slot_available = slot.max_visitors - booked
            if slot_available < available:
                available = slot_available
                occupied = max_capacity - available

        reasons = []
        vip_override = False
        is_admitted = expected_visitors == 0 or expected_visitors <= available

        if not is_admitted:
            if is_vip_request:
                is_admitted = True
                vip_override = True
                reasons.append(VIP_OVERRIDE_REASON)
                logger.warning(
                    f"VIP override on occupancy log {log.id}: {expected_visitors} requested, "
                    f"{available} available of {max_capacity}"
                )
            else:
                reasons.append(
                    f"Insufficient capacity: {expected_visitors} visitor(s) requested, "
                    f"{max(available, 0)} available of {max_capacity}."
                )

        if end_time is not None and slot is None:
            conflict = self._buffer_conflict(date_time, end_time, location_id)
            if conflict is not None:
                is_admitted = False
                reasons.append(
                    f"Requested time conflicts with the buffer zone of time slot '{conflict.name}' "
                    f"({conflict.start_time:%H:%M} - {conflict.end_time:%H:%M}, {conflict.buffer_minutes} min buffer)."
                )

        projected = occupied + (expected_visitors if is_admitted else 0)
        percentage = round(projected / max_capacity * 100, 2) if max_capacity > 0 else 0.0
        is_warning_level = percentage >= settings.capacity_warning_threshold
        if is_admitted and is_warning_level and expected_visitors > 0:
            reasons.append(f"Occupancy will reach {percentage}% of capacity.")

        if log.is_over_capacity():
            logger.warning(
                f"Occupancy log {log.id} is over capacity: {log.occupied_count}/{log.max_capacity}"
            )

        result = CapacityResult(
            is_admitted=is_admitted,
            current_occupancy=occupied,
            max_capacity=max_capacity,
            available_slots=available,
            occupancy_percentage=percentage,
            is_warning_level=is_warning_level,
            reasons=reasons,
            time_slot_id=slot.id if slot else None,
            location_id=location_id,
            occupancy_log_id=log.id,
            vip_override=vip_override,
        )

        if not is_admitted:
            logger.warning(f"Capacity check refused {expected_visitors} visitor(s) at {date_time}: {reasons}")
            if include_alternatives:
                result.alternative_slots = self.find_alternative_slots(date_time, max(expected_visitors, 1), location_id)
        else:
            logger.info(
                f"Capacity check admitted {expected_visitors} visitor(s) at {date_time} "
                f"(log {log.id}, {occupied}/{max_capacity})"
            )

        return result

    def _excluded_contribution(self, invitation_id: int, log_id: int) -> int:
        invitation = self.db.query(Invitation).filter(Invitation.id == invitation_id).first()
        if invitation is None:
            return 0
        if invitation.status == InvitationStatus.APPROVED and invitation.occupancy_log_id == log_id:
            return invitation.expected_visitor_count
        return 0

    def _buffer_conflict(self, start: datetime, end: datetime, location_id: Optional[int]) -> Optional[TimeSlot]:
        for slot in self.candidate_slots(start.date(), location_id):
            if slot.has_time_conflict(start, end):
                return slot
        return None

    # ------------------------------------------------------------------
    # Alternatives
    # ------------------------------------------------------------------

    def find_alternative_slots(
        self,
        date_time: datetime,
        expected_visitors: int,
        location_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[AlternativeSlot]:
        """Future slot starts within the search window with room for `expected_visitors`."""
        now = now or utcnow()
        location = self.get_location(location_id)
        alternatives = []

        for offset in range(settings.alternative_search_days + 1):
            day = date_time.date() + timedelta(days=offset)
            for slot in sorted(self.candidate_slots(day, location_id), key=lambda s: s.start_time):
                start = datetime.combine(day, slot.start_time)
                if start <= date_time or start < now:
                    continue
                log = self.tracker.find_log(day, slot.id, location_id)
                capacity = resolve_capacity(slot, location)
                available = min(
                    capacity - (log.occupied_count if log else 0),
                    slot.max_visitors - slot_booked_count(self.db, slot.id, day),
                )
                if available >= expected_visitors:
                    alternatives.append(AlternativeSlot(
                        time_slot_id=slot.id,
                        time_slot_name=slot.name,
                        date_time=start,
                        available_slots=available,
                    ))
                    if len(alternatives) >= settings.max_alternative_slots:
                        return alternatives

        return alternatives
