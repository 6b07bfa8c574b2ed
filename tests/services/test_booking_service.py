"""Tests for BookingService creation, update and status transitions."""

from datetime import date, time
import sqlite3

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from booking_engine.core.enums import BookingMode
from booking_engine.core.exceptions import (
    BookingConflictException,
    ForbiddenException,
    NotFoundException,
    ReferentialIntegrityException,
    ServiceException,
    ServiceUnavailableException,
    ValidationException,
)
from booking_engine.database import Base
from booking_engine.models import ScheduleType, Student, Teacher
from booking_engine.schemas.booking import BookingCreate, BookingUpdate
from booking_engine.services.booking_service import BookingService, classify_integrity_error

DAY = date(2026, 3, 2)


@pytest.fixture
def people(make_teacher, make_student, course):
    return {
        "teacher": make_teacher("Ms. Li"),
        "student": make_student("Ann"),
        "other_student": make_student("Bo"),
        "course": course,
    }


def _payload(people, **overrides):
    data = {
        "teacherId": people["teacher"].id,
        "studentIds": [people["student"].id],
        "typeId": people["course"].id,
        "date": "2026-03-02",
        "startTime": "09:00",
        "endTime": "10:00",
    }
    data.update(overrides)
    return BookingCreate.model_validate(data)


def _booking_count(db):
    return db.execute(text("SELECT COUNT(*) FROM course_arrangement")).scalar_one()


class _FakePgError(Exception):
    def __init__(self, pgcode, message="", constraint_name=None):
        super().__init__(message)
        self.pgcode = pgcode
        self.diag = type("Diag", (), {"constraint_name": constraint_name})()


class TestCreateBooking:
    """Scheduling path (always strict)."""

    def test_creates_pending_booking(self, db, people):
        result = BookingService(db).create_booking(_payload(people), created_by=42)

        assert result.skipped_students == 0
        assert result.booking["status"] == "pending"
        assert result.booking["date"] == "2026-03-02"
        assert result.booking["start_time"] == "09:00"
        assert result.booking["created_by"] == 42
        assert _booking_count(db) == 1

    def test_surplus_students_are_skipped(self, db, people):
        payload = _payload(people, studentIds=[people["student"].id, 8, 9])

        result = BookingService(db).create_booking(payload)

        assert result.skipped_students == 2
        assert result.booking["student_id"] == people["student"].id
        assert _booking_count(db) == 1

    def test_explicit_status_is_kept(self, db, people):
        result = BookingService(db).create_booking(_payload(people, status="Confirmed"))

        assert result.booking["status"] == "confirmed"

    def test_unknown_status_rejected(self, db, people):
        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).create_booking(_payload(people, status="done"))

        assert exc_info.value.fields == ["status"]
        assert _booking_count(db) == 0

    def test_end_before_start_rejected(self, db, people):
        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).create_booking(_payload(people, startTime="10:00", endTime="09:00"))

        assert exc_info.value.fields == ["end_time"]

    def test_inactive_teacher_rejected(self, db, people, make_teacher):
        inactive = make_teacher("Away", status=0)

        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).create_booking(_payload(people, teacherId=inactive.id))

        assert exc_info.value.fields == ["teacher_id"]

    def test_deleted_student_rejected(self, db, people, make_student):
        deleted = make_student("Gone", status=-1)

        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).create_booking(_payload(people, studentIds=[deleted.id]))

        assert exc_info.value.fields == ["student_id"]

    def test_missing_student_is_not_found(self, db, people):
        with pytest.raises(NotFoundException):
            BookingService(db).create_booking(_payload(people, studentIds=[999]))

    def test_overlap_rejected_and_nothing_written(self, db, people, make_booking):
        existing = make_booking(people["teacher"].id, people["other_student"].id)

        with pytest.raises(BookingConflictException) as exc_info:
            BookingService(db).create_booking(_payload(people, startTime="09:30", endTime="10:30"))

        assert exc_info.value.conflict_type == "teacher_overlap"
        assert exc_info.value.existing_booking_id == existing.id
        assert _booking_count(db) == 1

    def test_duplicate_rejected(self, db, people):
        service = BookingService(db)
        service.create_booking(_payload(people))

        with pytest.raises(BookingConflictException) as exc_info:
            service.create_booking(_payload(people))

        assert exc_info.value.conflict_type == "duplicate"

    def test_missing_schedule_type_maps_to_fk_field(self, db, people):
        with pytest.raises(ReferentialIntegrityException) as exc_info:
            BookingService(db).create_booking(_payload(people, typeId=999))

        assert exc_info.value.field == "fk"
        assert exc_info.value.code == "REFERENCE_MISSING"
        assert exc_info.value.status_code == 422
        assert _booking_count(db) == 0


class TestCreateDirectBooking:
    """Administrative path honours the configured booking mode."""

    def test_permissive_allows_duplicates(self, db, people):
        service = BookingService(db, direct_booking_mode=BookingMode.PERMISSIVE)
        service.create_direct_booking(_payload(people))
        service.create_direct_booking(_payload(people))

        assert _booking_count(db) == 2

    def test_permissive_still_validates_participants(self, db, people, make_teacher):
        inactive = make_teacher("Away", status=0)
        service = BookingService(db, direct_booking_mode=BookingMode.PERMISSIVE)

        with pytest.raises(ValidationException):
            service.create_direct_booking(_payload(people, teacherId=inactive.id))

    def test_strict_mode_checks_conflicts(self, db, people):
        service = BookingService(db, direct_booking_mode=BookingMode.STRICT)
        service.create_direct_booking(_payload(people))

        with pytest.raises(BookingConflictException):
            service.create_direct_booking(_payload(people))

    def test_mode_defaults_to_settings(self, db, people, monkeypatch):
        from booking_engine.core.config import settings

        monkeypatch.setattr(settings, "direct_booking_mode", "strict")

        assert BookingService(db).direct_booking_mode is BookingMode.STRICT


class TestUpdateBooking:
    def test_empty_update_rejected(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        with pytest.raises(ValidationException, match="No fields to update"):
            BookingService(db).update_booking(booking.id, BookingUpdate())

    def test_updates_only_supplied_fields(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id, location="Room 1")

        updated = BookingService(db).update_booking(
            booking.id, BookingUpdate.model_validate({"location": "Room 2"})
        )

        assert updated["location"] == "Room 2"
        assert updated["start_time"] == "09:00"
        assert updated["status"] == "pending"

    def test_shift_within_own_range_is_not_a_conflict(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        updated = BookingService(db).update_booking(
            booking.id, BookingUpdate.model_validate({"startTime": "09:30", "endTime": "10:30"})
        )

        assert updated["start_time"] == "09:30"

    def test_move_onto_other_booking_conflicts(self, db, people, make_booking):
        make_booking(people["teacher"].id, people["other_student"].id, start=time(11), end=time(12))
        booking = make_booking(people["teacher"].id, people["student"].id)

        with pytest.raises(BookingConflictException):
            BookingService(db).update_booking(
                booking.id, BookingUpdate.model_validate({"startTime": "11:30", "endTime": "12:30"})
            )

    def test_permissive_update_skips_conflicts(self, db, people, make_booking):
        make_booking(people["teacher"].id, people["other_student"].id, start=time(11), end=time(12))
        booking = make_booking(people["teacher"].id, people["student"].id)

        updated = BookingService(db).update_booking(
            booking.id,
            BookingUpdate.model_validate({"startTime": "11:30", "endTime": "12:30"}),
            mode=BookingMode.PERMISSIVE,
        )

        assert updated["start_time"] == "11:30"

    def test_merged_time_range_is_validated(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        with pytest.raises(ValidationException):
            BookingService(db).update_booking(
                booking.id, BookingUpdate.model_validate({"endTime": "08:00"})
            )

    def test_time_change_rechecks_current_teacher(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)
        people["teacher"].status = 0
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).update_booking(
                booking.id, BookingUpdate.model_validate({"startTime": "09:15", "endTime": "10:15"})
            )

        assert exc_info.value.fields == ["teacher_id"]

    def test_status_only_change_skips_conflict_check(self, db, people, make_booking):
        make_booking(people["teacher"].id, people["other_student"].id)
        overlapping = make_booking(
            people["teacher"].id, people["student"].id, start=time(9, 30), end=time(10, 30)
        )

        updated = BookingService(db).update_booking(
            overlapping.id, BookingUpdate.model_validate({"status": "confirmed"})
        )

        assert updated["status"] == "confirmed"

    def test_illegal_transition_rejected(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id, status="completed")

        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).update_booking(
                booking.id, BookingUpdate.model_validate({"status": "pending"})
            )

        assert exc_info.value.fields == ["status"]

    def test_null_for_required_column_rejected(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        with pytest.raises(ValidationException) as exc_info:
            BookingService(db).update_booking(
                booking.id, BookingUpdate.model_validate({"teacherId": None})
            )

        assert exc_info.value.fields == ["teacher_id"]

    def test_missing_booking(self, db, people):
        with pytest.raises(NotFoundException):
            BookingService(db).update_booking(999, BookingUpdate.model_validate({"location": "x"}))


class TestStatusTransitions:
    def test_confirm_pending(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        confirmed = BookingService(db).confirm_booking(booking.id)

        assert confirmed["status"] == "confirmed"

    def test_confirm_by_other_teacher_forbidden(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        with pytest.raises(ForbiddenException):
            BookingService(db).confirm_booking(booking.id, operator_teacher_id=people["teacher"].id + 100)

    def test_confirm_by_own_teacher(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id)

        confirmed = BookingService(db).confirm_booking(
            booking.id, operator_teacher_id=people["teacher"].id
        )

        assert confirmed["status"] == "confirmed"

    def test_cannot_confirm_cancelled(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id, status="cancelled")

        with pytest.raises(ValidationException):
            BookingService(db).confirm_booking(booking.id)

    def test_cancel_confirmed(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id, status="confirmed")

        cancelled = BookingService(db).cancel_booking(booking.id)

        assert cancelled["status"] == "cancelled"

    def test_cancel_is_idempotent(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["student"].id, status="cancelled")

        assert BookingService(db).cancel_booking(booking.id)["status"] == "cancelled"

    def test_cancelled_booking_frees_the_slot(self, db, people, make_booking):
        booking = make_booking(people["teacher"].id, people["other_student"].id)
        service = BookingService(db)
        service.cancel_booking(booking.id)

        result = service.create_booking(_payload(people))

        assert result.booking["status"] == "pending"

    def test_get_missing_booking(self, db):
        with pytest.raises(NotFoundException):
            BookingService(db).get_booking(12345)


class TestErrorTranslation:
    """Database failures map to stable domain errors."""

    def test_sqlite_check_violation(self, db):
        exc = IntegrityError(
            "INSERT", {}, sqlite3.IntegrityError("CHECK constraint failed: ck_course_arrangement_time_order")
        )

        translated = BookingService(db).translate_db_error(exc)

        assert isinstance(translated, ReferentialIntegrityException)
        assert translated.field == "check"
        assert translated.code == "INVARIANT_VIOLATION"

    def test_postgres_codes(self, db):
        service = BookingService(db)
        fk = IntegrityError("INSERT", {}, _FakePgError("23503", constraint_name="fk_course"))
        check = IntegrityError("INSERT", {}, _FakePgError("23514"))
        unique = IntegrityError("INSERT", {}, _FakePgError("23505"))

        assert service.translate_db_error(fk).field == "fk"
        assert service.translate_db_error(fk).details["constraint"] == "fk_course"
        assert service.translate_db_error(check).field == "check"
        assert isinstance(service.translate_db_error(unique), BookingConflictException)

    def test_transient_operational_error_is_503(self, db):
        exc = OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))

        translated = BookingService(db).translate_db_error(exc)

        assert isinstance(translated, ServiceUnavailableException)
        assert translated.to_http_exception().headers == {"Retry-After": "2"}

    def test_other_errors_are_service_errors(self, db):
        exc = OperationalError("SELECT 1", {}, Exception("syntax error near FROM"))

        assert type(BookingService(db).translate_db_error(exc)) is ServiceException

    def test_classify_walks_cause_chain(self):
        root = IntegrityError("INSERT", {}, sqlite3.IntegrityError("FOREIGN KEY constraint failed"))
        try:
            raise RuntimeError("wrapped") from root
        except RuntimeError as wrapped:
            assert classify_integrity_error(wrapped) == ("fk", None)


class TestLegacySchema:
    """Bookings on a table that still stores the date in class_date."""

    @pytest.fixture
    def legacy_db(self, engine_factory):
        engine = engine_factory()
        Base.metadata.create_all(
            engine,
            tables=[Teacher.__table__, Student.__table__, ScheduleType.__table__],
        )
        with engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TABLE course_arrangement ("
                    "id INTEGER PRIMARY KEY AUTOINCREMENT, "
                    "teacher_id INTEGER NOT NULL REFERENCES teachers(id), "
                    "student_id INTEGER NOT NULL REFERENCES students(id), "
                    "course_id INTEGER REFERENCES schedule_types(id), "
                    "class_date DATE NOT NULL, start_time TIME NOT NULL, end_time TIME NOT NULL, "
                    "status VARCHAR(20) NOT NULL DEFAULT 'pending', location TEXT, "
                    "transport_fee NUMERIC DEFAULT 0, other_fee NUMERIC DEFAULT 0, "
                    "last_auto_update DATETIME, created_by INTEGER, "
                    "created_at DATETIME, updated_at DATETIME)"
                )
            )
        session = sessionmaker(bind=engine, expire_on_commit=False)()
        session.add_all([Teacher(name="T"), Student(name="S"), ScheduleType(name="one-to-one")])
        session.commit()
        yield session
        session.close()

    def test_create_writes_class_date_and_detects_duplicates(self, legacy_db):
        payload = BookingCreate.model_validate(
            {
                "teacher_id": 1,
                "student_ids": [1],
                "course_id": 1,
                "date": "2026-03-02",
                "start_time": "09:00",
                "end_time": "10:00",
            }
        )
        service = BookingService(legacy_db)

        result = service.create_booking(payload)
        stored = legacy_db.execute(
            text("SELECT class_date FROM course_arrangement WHERE id = :id"), {"id": result.id}
        ).scalar_one()

        assert stored == "2026-03-02"
        assert result.booking["date"] == "2026-03-02"
        with pytest.raises(BookingConflictException):
            service.create_booking(payload)
