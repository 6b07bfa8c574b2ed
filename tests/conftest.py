"""
Shared fixtures for the booking engine test suite.

Every test gets its own in-memory SQLite database (one connection shared
through StaticPool, foreign keys enforced) so services can commit for real
without leaking rows between tests.
"""

from datetime import date, time
import os
from typing import Any, Callable, Iterator

# Point the application at an in-memory database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("CI", "1")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from booking_engine.core.config import settings  # noqa: E402
from booking_engine.database import Base, enable_sqlite_foreign_keys  # noqa: E402
import booking_engine.models  # noqa: E402,F401
from booking_engine.models import (  # noqa: E402
    Booking,
    ScheduleType,
    Student,
    StudentDailyAvailability,
    Teacher,
    TeacherDailyAvailability,
)

settings.is_testing = True

SESSION_DAY = date(2026, 3, 2)


def build_engine() -> Engine:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    return engine


@pytest.fixture
def engine_factory() -> Iterator[Callable[[], Engine]]:
    """Build extra bare engines (no tables) that are disposed after the test."""
    created = []

    def _build() -> Engine:
        created.append(build_engine())
        return created[-1]

    yield _build
    for extra in created:
        extra.dispose()


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = build_engine()
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    """Session on a fresh database; commits are real and discarded with the engine."""
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_teacher(db: Session) -> Callable[..., Teacher]:
    def _make(name: str = "Teacher", status: int = 1) -> Teacher:
        teacher = Teacher(name=name, status=status)
        db.add(teacher)
        db.commit()
        return teacher

    return _make


@pytest.fixture
def make_student(db: Session) -> Callable[..., Student]:
    def _make(name: str = "Student", status: int = 1) -> Student:
        student = Student(name=name, status=status)
        db.add(student)
        db.commit()
        return student

    return _make


@pytest.fixture
def course(db: Session) -> ScheduleType:
    schedule_type = ScheduleType(name="one-to-one", description="Single student session")
    db.add(schedule_type)
    db.commit()
    return schedule_type


@pytest.fixture
def make_booking(db: Session, course: ScheduleType) -> Callable[..., Booking]:
    """Insert a booking row directly, bypassing conflict checks."""

    def _make(
        teacher_id: int,
        student_id: int,
        day: date = SESSION_DAY,
        start: time = time(9, 0),
        end: time = time(10, 0),
        status: str = "pending",
        **extra: Any,
    ) -> Booking:
        booking = Booking(
            teacher_id=teacher_id,
            student_id=student_id,
            course_id=course.id,
            arr_date=day,
            start_time=start,
            end_time=end,
            status=status,
            **extra,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_availability(db: Session) -> Callable[..., Any]:
    def _make(
        role: str,
        person_id: int,
        day: date = SESSION_DAY,
        morning: int = 0,
        afternoon: int = 0,
        evening: int = 0,
    ) -> Any:
        if role == "teacher":
            row: Any = TeacherDailyAvailability(teacher_id=person_id, date=day)
        else:
            row = StudentDailyAvailability(student_id=person_id, date=day)
        row.morning_available = morning
        row.afternoon_available = afternoon
        row.evening_available = evening
        db.add(row)
        db.commit()
        return row

    return _make

