"""
TimeSlot Model
Recurring daily capacity template: a time-of-day window on given weekdays
"""
from datetime import date, datetime, time, timedelta
from typing import List, Set, Union

from sqlalchemy import Column, Integer, String, Boolean, Time, ForeignKey
from visitflow.core.database import Base
from visitflow.models.mixins import SoftDeleteMixin


class TimeSlot(SoftDeleteMixin, Base):
    __tablename__ = "vf_time_slots"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)

    # Window
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_visitors = Column(Integer, default=50, nullable=False)
    active_days = Column(String(20), default="1,2,3,4,5", nullable=False)  # 1=Monday ... 7=Sunday
    buffer_minutes = Column(Integer, default=15, nullable=False)

    # Scope: NULL applies to all locations
    location_id = Column(Integer, ForeignKey("vf_locations.id"), nullable=True, index=True)

    display_order = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    @property
    def duration_minutes(self) -> int:
        start = datetime.combine(date.min, self.start_time)
        end = datetime.combine(date.min, self.end_time)
        return int((end - start).total_seconds() // 60)

    @property
    def active_day_numbers(self) -> Set[int]:
        days = set()
        for part in (self.active_days or "").split(","):
            part = part.strip()
            if part.isdigit():
                days.add(int(part))
        return days

    def is_active_on_day(self, day: Union[date, int]) -> bool:
        """Weekday check; accepts a date/datetime or a day number (0 and 7 both mean Sunday)."""
        if isinstance(day, (date, datetime)):
            day_number = day.isoweekday()
        else:
            day_number = 7 if day == 0 else day
        return day_number in self.active_day_numbers

    def contains_time(self, moment: Union[datetime, time]) -> bool:
        clock = moment.time() if isinstance(moment, datetime) else moment
        return self.start_time <= clock <= self.end_time

    def window_on(self, day: date, buffered: bool = False) -> tuple[datetime, datetime]:
        start = datetime.combine(day, self.start_time)
        end = datetime.combine(day, self.end_time)
        if buffered:
            padding = timedelta(minutes=self.buffer_minutes or 0)
            start, end = start - padding, end + padding
        return start, end

    def has_time_conflict(self, appointment_start: datetime, appointment_end: datetime) -> bool:
        """
        True when [appointment_start, appointment_end) overlaps the slot window padded by
        buffer_minutes on both sides, on the appointment's day.
        """
        if not self.is_active_on_day(appointment_start):
            return False

        buffered_start, buffered_end = self.window_on(appointment_start.date(), buffered=True)
        return appointment_start < buffered_end and appointment_end > buffered_start

    def validate_time_slot(self) -> List[str]:
        errors = []

        if not self.name or not self.name.strip():
            errors.append("Time slot name is required.")
        if self.start_time is None or self.end_time is None or self.end_time <= self.start_time:
            errors.append("End time must be after start time.")
        if self.max_visitors is None or self.max_visitors < 1:
            errors.append("Maximum visitors must be at least 1.")
        if self.buffer_minutes is not None and self.buffer_minutes < 0:
            errors.append("Buffer minutes cannot be negative.")
        if not self.active_days or not self.active_days.strip():
            errors.append("Active days must be specified.")
        else:
            for part in self.active_days.split(","):
                part = part.strip()
                if not part.isdigit() or not 1 <= int(part) <= 7:
                    errors.append("Active days must be comma-separated numbers 1-7 (1=Monday, 7=Sunday).")
                    break

        return errors

    def get_display_string(self) -> str:
        return f"{self.name} ({self.start_time:%H:%M} - {self.end_time:%H:%M}) - Max: {self.max_visitors}"

    def __repr__(self):
        return f"<TimeSlot(id={self.id}, name='{self.name}', {self.start_time}-{self.end_time}, max={self.max_visitors})>"
