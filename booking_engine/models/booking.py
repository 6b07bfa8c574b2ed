# booking_engine/models/booking.py
"""
Booking model for the booking engine.

A booking (course arrangement) is one scheduled session between a
teacher and a student. Bookings store the date and time range directly
and never depend on availability records.

The physical table keeps its historical name ``course_arrangement``.
Older deployments may carry ``class_date`` or ``date`` instead of
``arr_date``; raw SQL resolves the session date through the SchemaAdapter.
"""

from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """
    Booking lifecycle statuses.

    INVALID is never persisted: it marks a caller-supplied value that is
    not one of the four legal statuses so it can be rejected at the boundary.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    INVALID = "invalid"

    @classmethod
    def parse(cls, value: Any) -> "BookingStatus":
        if isinstance(value, BookingStatus):
            return value
        if not isinstance(value, str):
            return cls.INVALID
        try:
            status = cls(value.strip().lower())
        except ValueError:
            return cls.INVALID
        return status

    @classmethod
    def persistable(cls) -> FrozenSet["BookingStatus"]:
        return frozenset({cls.PENDING, cls.CONFIRMED, cls.COMPLETED, cls.CANCELLED})

    def can_transition_to(self, target: "BookingStatus") -> bool:
        if target == self and self in self.persistable():
            return True
        return target in BOOKING_TRANSITIONS.get(self, frozenset())


BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# Statuses the lifecycle job advances to COMPLETED
AUTO_COMPLETABLE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """
    Scheduled session between a teacher and a student.

    ``last_auto_update`` is null until the lifecycle job transitions the
    row; once set the job never touches the row again.
    """

    __tablename__ = "course_arrangement"

    id = Column(Integer, primary_key=True, autoincrement=True)

    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("schedule_types.id"), nullable=False)

    arr_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    location = Column(Text, nullable=True)
    transport_fee = Column(Numeric(10, 2), nullable=False, default=0)
    other_fee = Column(Numeric(10, 2), nullable=False, default=0)

    last_auto_update = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    teacher = relationship("Teacher", lazy="joined")
    student = relationship("Student", lazy="joined")
    schedule_type = relationship("ScheduleType")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
            name="ck_course_arrangement_status",
        ),
        CheckConstraint("start_time < end_time", name="ck_course_arrangement_time_order"),
        Index("ix_course_arrangement_teacher_date", "teacher_id", "arr_date"),
        Index("ix_course_arrangement_student_date", "student_id", "arr_date"),
        Index("ix_course_arrangement_auto_update", "status", "last_auto_update", "arr_date"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: teacher={self.teacher_id}, "
            f"student={self.student_id}, date={self.arr_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )


class ScheduleAutoUpdateLog(Base):
    """Append-only audit row written for each booking the lifecycle job transitions."""

    __tablename__ = "schedule_auto_update_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    schedule_id = Column(Integer, ForeignKey("course_arrangement.id"), nullable=False, index=True)
    previous_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    run_id = Column(String(36), nullable=False, index=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    def __repr__(self) -> str:
        return (
            f"<ScheduleAutoUpdateLog {self.id}: schedule={self.schedule_id} "
            f"{self.previous_status}->{self.new_status} run={self.run_id}>"
        )

    def to_dict(self) -> dict[str, Optional[Any]]:
        return {
            "id": self.id,
            "schedule_id": self.schedule_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "run_id": self.run_id,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
