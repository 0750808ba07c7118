"""
Occupancy tracking.
All counter changes for a (date, time slot, location) key go through OccupancyLog.update_counts
via this tracker, inside the caller's transaction.
"""
from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from visitflow.core.errors import NotFoundError
from visitflow.models.occupancy import OccupancyLog

logger = logging.getLogger(__name__)


class OccupancyTracker:
    def __init__(self, db: Session):
        self.db = db

    def _key_query(self, day: date, time_slot_id: Optional[int], location_id: Optional[int]):
        query = self.db.query(OccupancyLog).filter(OccupancyLog.date == day)
        if time_slot_id is None:
            query = query.filter(OccupancyLog.time_slot_id.is_(None))
        else:
            query = query.filter(OccupancyLog.time_slot_id == time_slot_id)
        if location_id is None:
            query = query.filter(OccupancyLog.location_id.is_(None))
        else:
            query = query.filter(OccupancyLog.location_id == location_id)
        return query.order_by(OccupancyLog.id)

    def find_log(
        self,
        day: date,
        time_slot_id: Optional[int],
        location_id: Optional[int],
        lock: bool = False,
    ) -> Optional[OccupancyLog]:
        query = self._key_query(day, time_slot_id, location_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def get_or_create_log(
        self,
        day: date,
        time_slot_id: Optional[int],
        location_id: Optional[int],
        max_capacity: int,
        lock: bool = False,
    ) -> OccupancyLog:
        """
        Load the row for a key, creating it on first use.
        The stored max_capacity is refreshed to the currently resolved ceiling.
        """
        log = self.find_log(day, time_slot_id, location_id, lock=lock)
        if log is None:
            log = OccupancyLog(
                date=day,
                time_slot_id=time_slot_id,
                location_id=location_id,
                current_count=0,
                reserved_count=0,
                max_capacity=max_capacity,
            )
            self.db.add(log)
            self.db.flush()
            logger.info(f"Created occupancy log {log.id} for {day} slot={time_slot_id} location={location_id}")
        elif log.max_capacity != max_capacity:
            log.max_capacity = max_capacity
        return log

    def get_log(self, log_id: int, lock: bool = False) -> OccupancyLog:
        query = self.db.query(OccupancyLog).filter(OccupancyLog.id == log_id)
        if lock:
            query = query.with_for_update()
        log = query.first()
        if log is None:
            raise NotFoundError(f"Occupancy log {log_id} not found")
        return log

    def list_for_date(self, day: date, location_id: Optional[int] = None) -> List[OccupancyLog]:
        query = self.db.query(OccupancyLog).filter(OccupancyLog.date == day)
        if location_id is not None:
            query = query.filter(OccupancyLog.location_id == location_id)
        return query.order_by(OccupancyLog.time_slot_id, OccupancyLog.id).all()

    # ------------------------------------------------------------------
    # Counter movements
    # ------------------------------------------------------------------

    def reserve(self, log: OccupancyLog, visitors: int) -> None:
        log.update_counts(log.current_count, log.reserved_count + visitors)
        self._check_anomaly(log, "reserve")

    def release_reservation(self, log: OccupancyLog, visitors: int) -> None:
        log.update_counts(log.current_count, log.reserved_count - visitors)

    def check_in(self, log: OccupancyLog, visitors: int) -> None:
        """Reserved visitors become present."""
        log.update_counts(log.current_count + visitors, log.reserved_count - visitors)
        self._check_anomaly(log, "check-in")

    def check_out(self, log: OccupancyLog, visitors: int) -> None:
        log.update_counts(log.current_count - visitors, log.reserved_count)

    def _check_anomaly(self, log: OccupancyLog, operation: str) -> None:
        if log.is_over_capacity():
            logger.warning(
                f"Occupancy log {log.id} over capacity after {operation}: "
                f"{log.occupied_count}/{log.max_capacity} ({log.get_calculated_occupancy_percentage()}%)"
            )
