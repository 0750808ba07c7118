from datetime import datetime, timedelta

import pytest

from visitflow.core.errors import NotFoundError, ValidationFailedError
from visitflow.models import Location, TimeSlot
from visitflow.models.mixins import utcnow
from visitflow.services.capacity import (
    VIP_OVERRIDE_REASON,
    CapacityValidator,
    ensure_not_in_past,
    resolve_capacity,
)
from conftest import at


@pytest.fixture
def validator(db):
    return CapacityValidator(db)


class TestMondayScenario:

    def test_fill_refuse_then_vip_overbook(self, db, validator, monday_slot, monday):
        """Two visitors fill the slot, a third is refused, then admitted as VIP."""
        first = validator.validate(at(monday, 9, 30), expected_visitors=2)
        assert first.is_admitted
        assert first.time_slot_id == monday_slot.id
        assert first.max_capacity == 2
        log = validator.tracker.get_log(first.occupancy_log_id)
        validator.tracker.reserve(log, 2)
        db.commit()

        second = validator.validate(at(monday, 9, 45), expected_visitors=1)
        assert second.is_admitted is False
        assert second.available_slots == 0
        assert second.current_occupancy == 2
        assert second.occupancy_log_id == log.id
        assert any("Insufficient capacity" in reason for reason in second.reasons)

        vip = validator.validate(at(monday, 9, 45), expected_visitors=1, is_vip_request=True)
        assert vip.is_admitted
        assert vip.vip_override
        assert VIP_OVERRIDE_REASON in vip.reasons
        validator.tracker.reserve(log, 1)

        assert log.occupied_count == 3
        assert log.is_over_capacity()

    def test_refusal_suggests_next_week(self, db, validator, monday_slot, monday):
        log = validator.tracker.get_or_create_log(monday, monday_slot.id, None, 2)
        validator.tracker.reserve(log, 2)
        db.commit()

        result = validator.validate(at(monday, 9, 45), expected_visitors=1)
        assert not result.is_admitted
        assert [alt.date_time for alt in result.alternative_slots] == [at(monday + timedelta(days=7), 9, 0)]
        assert result.alternative_slots[0].available_slots == 2


class TestAdmission:

    def test_zero_visitors_reads_state_and_admits(self, db, validator, monday_slot, monday):
        log = validator.tracker.get_or_create_log(monday, monday_slot.id, None, 2)
        validator.tracker.reserve(log, 2)
        db.commit()

        result = validator.validate(at(monday, 9, 30), expected_visitors=0)
        assert result.is_admitted
        assert result.current_occupancy == 2
        assert result.available_slots == 0
        assert result.reasons == []

    def test_warning_level_adds_reason(self, db, validator, monday_slot, monday):
        location = Location(name="Lab", max_occupancy=5, is_active=True)
        db.add(location)
        db.commit()

        result = validator.validate(at(monday, 14, 0), expected_visitors=4, location_id=location.id)
        assert result.is_admitted
        assert result.time_slot_id is None
        assert result.max_capacity == 5
        assert result.occupancy_percentage == 80.0
        assert result.is_warning_level
        assert any("80.0%" in reason for reason in result.reasons)

    def test_no_slot_no_location_uses_default_capacity(self, validator, monday):
        result = validator.validate(at(monday, 14, 0), expected_visitors=3)
        assert result.is_admitted
        assert result.max_capacity == 100
        assert result.time_slot_id is None

    def test_location_slot_preferred_over_global(self, db, validator, monday_slot, location, monday):
        scoped = TimeSlot(
            name="Lobby Monday", start_time=monday_slot.start_time, end_time=monday_slot.end_time,
            max_visitors=5, active_days="1", buffer_minutes=0, location_id=location.id,
            display_order=9, is_active=True,
        )
        db.add(scoped)
        db.commit()

        result = validator.validate(at(monday, 9, 30), expected_visitors=1, location_id=location.id)
        assert result.time_slot_id == scoped.id
        assert result.max_capacity == resolve_capacity(scoped, location) == 5

    def test_excluded_invitation_is_discounted(self, db, lifecycle, admin, make_invitation, monday):
        invitation = make_invitation(visitors=2)
        lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(invitation.id, admin.id)
        db.commit()

        validator = CapacityValidator(db)
        without = validator.validate(at(monday, 9, 30), expected_visitors=2)
        assert not without.is_admitted

        recheck = validator.validate(at(monday, 9, 30), expected_visitors=2, exclude_invitation_id=invitation.id)
        assert recheck.is_admitted
        assert recheck.current_occupancy == 0


class TestBufferZone:

    def test_request_in_buffer_is_refused_even_for_vip(self, validator, monday_slot, monday):
        result = validator.validate(
            at(monday, 10, 5), expected_visitors=1, end_time=at(monday, 10, 30), is_vip_request=True
        )
        assert not result.is_admitted
        assert any("buffer zone" in reason for reason in result.reasons)

    def test_outside_buffer_is_admitted(self, validator, monday_slot, monday):
        result = validator.validate(at(monday, 10, 15), expected_visitors=1, end_time=at(monday, 11, 0))
        assert result.is_admitted

    def test_without_end_time_no_buffer_check(self, validator, monday_slot, monday):
        assert validator.validate(at(monday, 10, 5), expected_visitors=1).is_admitted


class TestReferences:

    def test_unknown_slot(self, validator, monday):
        with pytest.raises(NotFoundError):
            validator.validate(at(monday, 9, 30), time_slot_id=999)

    def test_slot_not_active_that_day(self, validator, monday_slot, monday):
        with pytest.raises(ValidationFailedError):
            validator.validate(at(monday + timedelta(days=1), 9, 30), time_slot_id=monday_slot.id)

    def test_unknown_location(self, validator, monday):
        with pytest.raises(NotFoundError):
            validator.validate(at(monday, 9, 30), location_id=999)

    def test_inactive_location(self, db, validator, location, monday):
        location.is_active = False
        db.commit()
        with pytest.raises(ValidationFailedError):
            validator.validate(at(monday, 9, 30), location_id=location.id)


class TestPastRequests:

    def test_grace_window(self):
        now = datetime(2030, 1, 7, 12, 0)
        ensure_not_in_past(now - timedelta(minutes=4), now=now)
        with pytest.raises(ValidationFailedError):
            ensure_not_in_past(now - timedelta(minutes=6), now=now)

    def test_future_is_accepted(self):
        ensure_not_in_past(utcnow() + timedelta(hours=1))
