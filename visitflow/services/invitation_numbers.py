"""
Invitation number generation.
Numbers look like INV-20260119093000-123. One generator per process hands out each
number at most once; when the 900 suffixes of a second run out it moves to the next second.
"""
from datetime import datetime, timedelta
from typing import Optional
import random
import threading

from visitflow.models.mixins import utcnow

SUFFIX_RANGE = range(100, 1000)


class InvitationNumberGenerator:
    def __init__(self):
        self._lock = threading.Lock()
        self._second: Optional[datetime] = None
        self._issued: set[int] = set()

    def next_number(self, now: Optional[datetime] = None) -> str:
        now = (now or utcnow()).replace(microsecond=0)
        with self._lock:
            if self._second is None or now > self._second:
                self._second = now
                self._issued = set()
            if len(self._issued) >= len(SUFFIX_RANGE):
                self._second += timedelta(seconds=1)
                self._issued = set()

            suffix = random.choice([n for n in SUFFIX_RANGE if n not in self._issued])
            self._issued.add(suffix)
            return f"INV-{self._second:%Y%m%d%H%M%S}-{suffix}"


invitation_numbers = InvitationNumberGenerator()
