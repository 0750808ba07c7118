from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from visitflow.core.errors import NotFoundError
from visitflow.models.occupancy import OccupancyLog
from visitflow.services.occupancy import OccupancyTracker


def make_log(current=0, reserved=0, max_capacity=10):
    return OccupancyLog(date=date(2030, 1, 7), current_count=current, reserved_count=reserved, max_capacity=max_capacity)


class TestOccupancyLog:

    def test_update_counts_clamps_at_zero(self):
        log = make_log(current=2, reserved=1)
        log.update_counts(-3, -1)
        assert log.current_count == 0
        assert log.reserved_count == 0
        assert log.last_updated is not None

    def test_derived_values(self):
        log = make_log(current=3, reserved=2, max_capacity=10)
        assert log.occupied_count == 5
        assert log.get_calculated_available_capacity() == 5
        assert log.get_calculated_occupancy_percentage() == 50.0
        assert log.has_available_capacity(5)
        assert not log.has_available_capacity(6)

    def test_derived_values_follow_counter_changes(self):
        log = make_log(current=1, max_capacity=4)
        assert log.get_calculated_occupancy_percentage() == 25.0
        log.update_counts(3, 0)
        assert log.get_calculated_occupancy_percentage() == 75.0

    @pytest.mark.parametrize("occupied, expected", [(7, False), (8, True), (10, True)])
    def test_warning_level_at_eighty_percent(self, occupied, expected):
        assert make_log(current=occupied).is_at_warning_level() is expected

    def test_over_capacity(self):
        assert not make_log(current=5, reserved=5).is_over_capacity()
        assert make_log(current=6, reserved=5).is_over_capacity()
        assert make_log(current=6, reserved=5).get_calculated_available_capacity() == -1

    def test_zero_capacity_percentage(self):
        assert make_log(max_capacity=0).get_calculated_occupancy_percentage() == 0.0

    def test_validation(self):
        errors = make_log(max_capacity=0).validate_occupancy_log()
        assert "Maximum capacity must be greater than zero." in errors


class TestOccupancyTracker:

    def test_get_or_create_reuses_row_and_refreshes_capacity(self, db):
        tracker = OccupancyTracker(db)
        first = tracker.get_or_create_log(date(2030, 1, 7), None, None, 10)
        second = tracker.get_or_create_log(date(2030, 1, 7), None, None, 8)
        assert first.id == second.id
        assert second.max_capacity == 8

    def test_keys_are_independent(self, db):
        tracker = OccupancyTracker(db)
        a = tracker.get_or_create_log(date(2030, 1, 7), None, None, 10)
        b = tracker.get_or_create_log(date(2030, 1, 8), None, None, 10)
        assert a.id != b.id

    def test_counter_movements(self, db):
        tracker = OccupancyTracker(db)
        log = tracker.get_or_create_log(date(2030, 1, 7), None, None, 10)
        tracker.reserve(log, 3)
        tracker.check_in(log, 2)
        assert (log.current_count, log.reserved_count) == (2, 1)
        tracker.check_out(log, 2)
        tracker.release_reservation(log, 1)
        assert (log.current_count, log.reserved_count) == (0, 0)

    def test_over_capacity_is_logged(self, db, caplog):
        tracker = OccupancyTracker(db)
        log = tracker.get_or_create_log(date(2030, 1, 7), None, None, 2)
        tracker.reserve(log, 3)
        assert log.is_over_capacity()
        assert "over capacity" in caplog.text

    def test_missing_log(self, db):
        with pytest.raises(NotFoundError):
            OccupancyTracker(db).get_log(999)

    def test_key_is_unique_even_without_slot_or_location(self, db):
        tracker = OccupancyTracker(db)
        tracker.get_or_create_log(date(2030, 1, 7), None, None, 10)
        db.commit()

        db.add(OccupancyLog(date=date(2030, 1, 7), current_count=0, reserved_count=0, max_capacity=10))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()
        assert db.query(OccupancyLog).count() == 1
