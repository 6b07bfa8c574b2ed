"""
Database models for the booking engine.

- Participants: teachers, students and schedule types
- Bookings (course arrangements) and the auto-update audit log
- Per-role daily availability
"""

from .availability import StudentDailyAvailability, TeacherDailyAvailability
from .booking import (
    AUTO_COMPLETABLE_STATUSES,
    BOOKING_TRANSITIONS,
    Booking,
    BookingStatus,
    ScheduleAutoUpdateLog,
)
from .participant import ScheduleType, Student, Teacher

__all__ = [
    "AUTO_COMPLETABLE_STATUSES",
    "BOOKING_TRANSITIONS",
    "Booking",
    "BookingStatus",
    "ScheduleAutoUpdateLog",
    "ScheduleType",
    "Student",
    "StudentDailyAvailability",
    "Teacher",
    "TeacherDailyAvailability",
]
