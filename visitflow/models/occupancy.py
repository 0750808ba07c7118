"""
OccupancyLog Model
Live counter of checked-in and reserved visitors for one (date, time slot, location) key.
Available capacity and occupancy percentage are always derived, never stored.
"""
from typing import List

from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, Index, func
from visitflow.core.config import settings
from visitflow.core.database import Base
from visitflow.models.mixins import utcnow


class OccupancyLog(Base):
    __tablename__ = "vf_occupancy_logs"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    time_slot_id = Column(Integer, ForeignKey("vf_time_slots.id"), nullable=True)
    location_id = Column(Integer, ForeignKey("vf_locations.id"), nullable=True)

    current_count = Column(Integer, default=0, nullable=False)  # checked in
    reserved_count = Column(Integer, default=0, nullable=False)  # approved, not yet checked in
    max_capacity = Column(Integer, nullable=False)

    last_updated = Column(DateTime, default=utcnow, nullable=False)
    created_on = Column(DateTime, default=utcnow, nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def update_counts(self, current_count: int, reserved_count: int) -> None:
        """Single mutation entry point: clamps both counters at zero and stamps last_updated."""
        self.current_count = max(0, current_count)
        self.reserved_count = max(0, reserved_count)
        self.last_updated = utcnow()

    @property
    def occupied_count(self) -> int:
        return (self.current_count or 0) + (self.reserved_count or 0)

    def get_calculated_available_capacity(self) -> int:
        return self.max_capacity - self.occupied_count

    def get_calculated_occupancy_percentage(self) -> float:
        if not self.max_capacity or self.max_capacity <= 0:
            return 0.0
        return round(self.occupied_count / self.max_capacity * 100, 2)

    def is_over_capacity(self) -> bool:
        return self.occupied_count > self.max_capacity

    def is_at_warning_level(self) -> bool:
        return self.get_calculated_occupancy_percentage() >= settings.capacity_warning_threshold

    def has_available_capacity(self, additional_visitors: int) -> bool:
        return self.occupied_count + additional_visitors <= self.max_capacity

    def validate_occupancy_log(self) -> List[str]:
        errors = []
        if self.date is None:
            errors.append("Date is required.")
        if self.max_capacity is None or self.max_capacity < 1:
            errors.append("Maximum capacity must be greater than zero.")
        if (self.current_count or 0) < 0:
            errors.append("Current count cannot be negative.")
        if (self.reserved_count or 0) < 0:
            errors.append("Reserved count cannot be negative.")
        if self.date is not None and (self.date - utcnow().date()).days > 365:
            errors.append("Date cannot be more than 1 year in the future.")
        return errors

    def __repr__(self):
        return (
            f"<OccupancyLog(date={self.date}, slot={self.time_slot_id}, location={self.location_id}, "
            f"current={self.current_count}, reserved={self.reserved_count}, max={self.max_capacity})>"
        )


# One row per key; a NULL slot or location is folded to 0 so it collides like any other id
Index(
    "uq_vf_occupancy_key",
    OccupancyLog.date,
    func.coalesce(OccupancyLog.time_slot_id, 0),
    func.coalesce(OccupancyLog.location_id, 0),
    unique=True,
)
