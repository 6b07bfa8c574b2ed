# booking_engine/services/booking_service.py
"""
Booking Service for the booking engine.

Creates, updates and transitions bookings atomically. Each write runs in
one transaction that validates participants and the time range, runs
the conflict checks when the booking mode is strict, and then writes the
row.

Two creation paths exist:
- ``create_booking``: scheduling path, always strict
- ``create_direct_booking``: administrative path, mode taken from
  ``settings.direct_booking_mode`` (permissive by default, which allows
  duplicates and overlaps)
"""

from dataclasses import dataclass
from datetime import date, datetime, time
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import BookingMode, ParticipantRole, ParticipantStatus
from ..core.exceptions import (
    BookingConflictException,
    DomainException,
    ForbiddenException,
    NotFoundException,
    ReferentialIntegrityException,
    ValidationException,
)
from ..core.timezone_utils import utc_now
from ..models.booking import BookingStatus
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingRepository
from ..schemas.booking import BookingCreate, BookingUpdate
from .base import BaseService
from .conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = "This booking conflicts with an existing booking"
FK_VIOLATION_MESSAGE = "Referenced teacher, student or schedule type is missing or deleted"
CHECK_VIOLATION_MESSAGE = "Booking violates a database invariant"

# PostgreSQL SQLSTATE codes
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_UNIQUE_VIOLATION = "23505"
_PG_CHECK_VIOLATION = "23514"

# Fields that decide whether an update needs a fresh conflict check
_SCHEDULING_FIELDS = frozenset({"teacher_id", "student_id", "session_date", "start_time", "end_time"})
_REQUIRED_FIELDS = frozenset(
    {"teacher_id", "student_id", "course_id", "session_date", "start_time", "end_time", "status"}
)


@dataclass(frozen=True)
class BookingCreateResult:
    id: int
    skipped_students: int
    booking: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "skipped_students": self.skipped_students, "booking": self.booking}


def booking_row_to_dict(row: Dict[str, Any]) -> Dict[str, Any]:
    """Render a booking row (with resolved session date) for API responses."""
    session_date = row.get("session_date")
    start, end = row.get("start_time"), row.get("end_time")
    last_auto = row.get("last_auto_update")
    return {
        "id": row["id"],
        "teacher_id": row["teacher_id"],
        "student_id": row["student_id"],
        "course_id": row.get("course_id"),
        "date": session_date.isoformat() if isinstance(session_date, date) else session_date,
        "start_time": start.strftime("%H:%M") if isinstance(start, time) else start,
        "end_time": end.strftime("%H:%M") if isinstance(end, time) else end,
        "status": row["status"],
        "location": row.get("location"),
        "transport_fee": float(row.get("transport_fee") or 0),
        "other_fee": float(row.get("other_fee") or 0),
        "last_auto_update": (
            last_auto.isoformat() if isinstance(last_auto, datetime) else last_auto
        ),
        "created_by": row.get("created_by"),
    }


def classify_integrity_error(exc: BaseException) -> Tuple[Optional[str], Optional[str]]:
    """
    Classify a database constraint failure.

    Returns:
        (category, constraint_name) where category is "fk", "check",
        "unique", "deadlock" or None when the error is not a constraint failure
    """
    candidate: Optional[BaseException] = exc
    while candidate is not None and not isinstance(candidate, SQLAlchemyError):
        candidate = candidate.__cause__
    if candidate is None:
        candidate = exc

    orig = getattr(candidate, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    diag = getattr(orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None) if diag is not None else None
    message = str(orig if orig is not None else candidate).lower()

    if pgcode == _PG_FOREIGN_KEY_VIOLATION or "foreign key" in message:
        return ReferentialIntegrityException.FOREIGN_KEY, constraint_name
    if pgcode == _PG_CHECK_VIOLATION or "check constraint" in message:
        return ReferentialIntegrityException.CHECK, constraint_name
    if pgcode == _PG_UNIQUE_VIOLATION or "unique constraint" in message or "duplicate key" in message:
        return "unique", constraint_name
    if "deadlock detected" in message or "exclusion constraint" in message:
        return "deadlock", constraint_name
    return None, constraint_name


class BookingService(BaseService):
    """
    Service layer for booking creation, update and status changes.

    Conflict rules live in ConflictChecker; this service decides when they
    apply and owns the transaction around check-and-write.
    """

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        repository: Optional[BookingRepository] = None,
        direct_booking_mode: Optional[BookingMode] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self._direct_booking_mode = direct_booking_mode

    @property
    def direct_booking_mode(self) -> BookingMode:
        return self._direct_booking_mode or BookingMode(settings.direct_booking_mode)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self, booking_data: BookingCreate, created_by: Optional[int] = None
    ) -> BookingCreateResult:
        """
        Create a booking through the scheduling path.

        Duplicate and overlap checks always run on this path.

        Raises:
            ValidationException: Bad status, inactive participant or end <= start
            NotFoundException: Teacher or student does not exist
            BookingConflictException: Duplicate or overlapping booking
            ReferentialIntegrityException: Store rejected the row
        """
        return self._create(booking_data, BookingMode.STRICT, created_by)

    @BaseService.measure_operation("create_direct_booking")
    def create_direct_booking(
        self, booking_data: BookingCreate, created_by: Optional[int] = None
    ) -> BookingCreateResult:
        """Create a booking through the administrative path (mode from settings)."""
        return self._create(booking_data, self.direct_booking_mode, created_by)

    def _create(
        self, booking_data: BookingCreate, mode: BookingMode, created_by: Optional[int]
    ) -> BookingCreateResult:
        status = self._resolve_initial_status(booking_data.status)
        student_id = booking_data.student_ids[0]
        skipped = len(booking_data.student_ids) - 1

        with self.transaction():
            self._ensure_participant_eligible(ParticipantRole.TEACHER, booking_data.teacher_id)
            self._ensure_participant_eligible(ParticipantRole.STUDENT, student_id)
            ConflictChecker.validate_time_range(booking_data.start_time, booking_data.end_time)

            if mode is BookingMode.STRICT:
                self._check_conflicts(
                    booking_data.teacher_id,
                    student_id,
                    booking_data.session_date,
                    booking_data.start_time,
                    booking_data.end_time,
                )

            now = utc_now()
            booking_id = self.repository.insert_booking(
                {
                    "teacher_id": booking_data.teacher_id,
                    "student_id": student_id,
                    "course_id": booking_data.course_id,
                    "session_date": booking_data.session_date,
                    "start_time": booking_data.start_time,
                    "end_time": booking_data.end_time,
                    "status": status.value,
                    "location": booking_data.location,
                    "transport_fee": booking_data.transport_fee,
                    "other_fee": booking_data.other_fee,
                    "created_by": created_by,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            row = self.repository.get_row(booking_id)

        if skipped:
            self.logger.info(
                f"Booking {booking_id} created for first student only; skipped {skipped}",
                extra={"booking_id": booking_id, "skipped_students": skipped},
            )
        self.log_operation(
            "create_booking",
            booking_id=booking_id,
            teacher_id=booking_data.teacher_id,
            student_id=student_id,
            mode=mode.value,
        )
        return BookingCreateResult(
            id=booking_id,
            skipped_students=skipped,
            booking=booking_row_to_dict(row) if row else {},
        )

    # ------------------------------------------------------------------
    # Updates and transitions
    # ------------------------------------------------------------------

    @BaseService.measure_operation("update_booking")
    def update_booking(
        self,
        booking_id: int,
        update_data: BookingUpdate,
        mode: BookingMode = BookingMode.STRICT,
    ) -> Dict[str, Any]:
        """
        Merge supplied fields over the current row and write only those fields.

        Time range, participant eligibility and status legality are checked
        against the merged values.
        """
        fields = update_data.supplied_fields()
        if not fields:
            raise ValidationException.for_field("body", "No fields to update")

        missing = sorted(name for name in _REQUIRED_FIELDS if name in fields and fields[name] is None)
        if missing:
            raise ValidationException.for_fields(
                [{"field": name, "message": f"{name} cannot be null"} for name in missing]
            )

        with self.transaction():
            current = self._get_row_or_404(booking_id)
            effective = {**current, **fields}

            if "status" in fields:
                target = self._parse_status(fields["status"])
                self._ensure_transition(current["status"], target)
                fields["status"] = target.value
                effective["status"] = target.value

            self._ensure_participant_eligible(ParticipantRole.TEACHER, effective["teacher_id"])
            self._ensure_participant_eligible(ParticipantRole.STUDENT, effective["student_id"])
            ConflictChecker.validate_time_range(effective["start_time"], effective["end_time"])

            needs_check = (
                mode is BookingMode.STRICT
                and _SCHEDULING_FIELDS.intersection(fields)
                and effective["status"] != BookingStatus.CANCELLED.value
            )
            if needs_check:
                self._check_conflicts(
                    effective["teacher_id"],
                    effective["student_id"],
                    effective["session_date"],
                    effective["start_time"],
                    effective["end_time"],
                    exclude_booking_id=booking_id,
                )

            self.repository.update_fields(booking_id, fields, utc_now())
            row = self._get_row_or_404(booking_id)

        self.log_operation("update_booking", booking_id=booking_id, fields=sorted(fields))
        return booking_row_to_dict(row)

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(
        self, booking_id: int, operator_teacher_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Move a pending booking to confirmed.

        Args:
            booking_id: Booking to confirm
            operator_teacher_id: When a teacher confirms, their id; must match
                the booking's teacher. None for administrators.
        """
        return self._transition(
            booking_id, BookingStatus.CONFIRMED, operator_teacher_id=operator_teacher_id
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: int) -> Dict[str, Any]:
        """Cancel a pending or confirmed booking."""
        return self._transition(booking_id, BookingStatus.CANCELLED)

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: int) -> Dict[str, Any]:
        return booking_row_to_dict(self._get_row_or_404(booking_id))

    def _transition(
        self,
        booking_id: int,
        target: BookingStatus,
        operator_teacher_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self.transaction():
            current = self._get_row_or_404(booking_id)
            if operator_teacher_id is not None and current["teacher_id"] != operator_teacher_id:
                raise ForbiddenException(
                    "Only the booking's teacher or an administrator can change this booking",
                    code="NOT_BOOKING_TEACHER",
                )
            self._ensure_transition(current["status"], target)
            if current["status"] != target.value:
                self.repository.update_fields(booking_id, {"status": target.value}, utc_now())
            row = self._get_row_or_404(booking_id)

        self.log_operation(
            f"{target.value}_booking", booking_id=booking_id, previous_status=current["status"]
        )
        return booking_row_to_dict(row)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_status(value: Any) -> BookingStatus:
        status = BookingStatus.parse(value)
        if status is BookingStatus.INVALID:
            raise ValidationException.for_field(
                "status",
                f"Invalid status '{value}'. Allowed: pending, confirmed, completed, cancelled",
            )
        return status

    def _resolve_initial_status(self, value: Optional[str]) -> BookingStatus:
        if value is None or (isinstance(value, str) and not value.strip()):
            return BookingStatus.PENDING
        return self._parse_status(value)

    @staticmethod
    def _ensure_transition(current_value: str, target: BookingStatus) -> None:
        current = BookingStatus.parse(current_value)
        if not current.can_transition_to(target):
            raise ValidationException.for_field(
                "status", f"Cannot change booking status from {current_value} to {target.value}"
            )

    def _ensure_participant_eligible(self, role: ParticipantRole, person_id: int) -> None:
        """
        The participant must exist and, when the table tracks status, be active.

        A schema without a status column skips the status check.
        """
        exists, status = self.repository.get_participant_status(role, person_id)
        label = role.value.capitalize()
        if not exists:
            raise NotFoundException(
                f"{label} {person_id} not found",
                code=f"{role.value.upper()}_NOT_FOUND",
                details={"field": f"{role.value}_id", "id": person_id},
            )
        if status is not None and status != ParticipantStatus.ACTIVE.value:
            raise ValidationException.for_field(f"{role.value}_id", f"{label} is not active")

    def _get_row_or_404(self, booking_id: int) -> Dict[str, Any]:
        row = self.repository.get_row(booking_id)
        if row is None:
            raise NotFoundException(
                f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND"
            )
        return row

    def _check_conflicts(
        self,
        teacher_id: int,
        student_id: int,
        session_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        self.conflict_checker.repository.acquire_booking_locks(teacher_id, student_id)
        self.conflict_checker.raise_for_conflicts(
            teacher_id, student_id, session_date, start_time, end_time, exclude_booking_id
        )

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    def translate_db_error(self, exc: Exception) -> DomainException:
        category, constraint = classify_integrity_error(exc)
        if category == ReferentialIntegrityException.FOREIGN_KEY:
            return ReferentialIntegrityException(
                ReferentialIntegrityException.FOREIGN_KEY, FK_VIOLATION_MESSAGE, constraint=constraint
            )
        if category == ReferentialIntegrityException.CHECK:
            return ReferentialIntegrityException(
                ReferentialIntegrityException.CHECK, CHECK_VIOLATION_MESSAGE, constraint=constraint
            )
        if category in ("unique", "deadlock"):
            details: Dict[str, Any] = {"conflict_type": category}
            if constraint:
                details["constraint"] = constraint
            return BookingConflictException(GENERIC_CONFLICT_MESSAGE, details=details)
        if isinstance(exc, IntegrityError):
            self.logger.error(f"Unclassified integrity error: {exc}")
        return super().translate_db_error(exc)
