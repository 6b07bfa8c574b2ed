"""
Participant models: teachers, students and schedule (course) types.

Teachers and students carry an integer account status; only active
participants (status == 1) may be booked.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from ..core.enums import ParticipantStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class _ParticipantMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    status = Column(Integer, nullable=False, default=ParticipantStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)


class Teacher(_ParticipantMixin, Base):
    __tablename__ = "teachers"

    def __repr__(self) -> str:
        return f"<Teacher {self.id}: {self.name} status={self.status}>"


class Student(_ParticipantMixin, Base):
    __tablename__ = "students"

    def __repr__(self) -> str:
        return f"<Student {self.id}: {self.name} status={self.status}>"


class ScheduleType(Base):
    """Kind of session being booked (one-to-one, trial, review...)."""

    __tablename__ = "schedule_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ScheduleType {self.id}: {self.name}>"
