from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

import sqlalchemy as sa
from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint

from ..core.enums import TimeSlot
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class _DailyAvailabilityMixin:
    """
    One row per person per day; each slot column stores 1 (available) or 0.

    A missing row means no decision was recorded for that day.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False)
    morning_available = Column(Integer, nullable=False, default=0, server_default=sa.text("0"))
    afternoon_available = Column(Integer, nullable=False, default=0, server_default=sa.text("0"))
    evening_available = Column(Integer, nullable=False, default=0, server_default=sa.text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    def slot_values(self) -> Dict[TimeSlot, int]:
        return {slot: int(getattr(self, slot.column) or 0) for slot in TimeSlot}

    @property
    def is_empty(self) -> bool:
        return not any(self.slot_values().values())

    def to_dict(self) -> Dict[str, Any]:
        values = self.slot_values()
        return {
            "date": self.date.isoformat(),
            "morning": bool(values[TimeSlot.MORNING]),
            "afternoon": bool(values[TimeSlot.AFTERNOON]),
            "evening": bool(values[TimeSlot.EVENING]),
        }


class TeacherDailyAvailability(_DailyAvailabilityMixin, Base):
    __tablename__ = "teacher_daily_availability"

    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("teacher_id", "date", name="uq_teacher_daily_availability"),
    )

    @property
    def person_id(self) -> int:
        return self.teacher_id


class StudentDailyAvailability(_DailyAvailabilityMixin, Base):
    __tablename__ = "student_daily_availability"

    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("student_id", "date", name="uq_student_daily_availability"),
    )

    @property
    def person_id(self) -> int:
        return self.student_id
