# booking_engine/core/enums.py
"""
Core enums for the booking engine.

Enumeration types shared by the models, services and API schemas.
Booking statuses live with the Booking model in ``models/booking.py``.
"""

from datetime import time
from enum import Enum
from typing import Tuple


class BookingMode(str, Enum):
    """
    Conflict policy applied when a booking is written.

    STRICT runs the duplicate/overlap checks under a per-person lock.
    PERMISSIVE skips them (administrative direct booking).
    """

    STRICT = "strict"
    PERMISSIVE = "permissive"


class ParticipantStatus(int, Enum):
    """Account status stored on teachers and students."""

    DELETED = -1
    INACTIVE = 0
    ACTIVE = 1


class ParticipantRole(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class TimeSlot(str, Enum):
    """Daily availability slots."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @property
    def column(self) -> str:
        return f"{self.value}_available"

    @property
    def time_range(self) -> Tuple[time, time]:
        return SLOT_RANGES[self]


SLOT_RANGES = {
    TimeSlot.MORNING: (time(8, 0), time(12, 0)),
    TimeSlot.AFTERNOON: (time(13, 0), time(17, 0)),
    # Evening runs to the end of the day
    TimeSlot.EVENING: (time(18, 0), time(23, 59)),
}
