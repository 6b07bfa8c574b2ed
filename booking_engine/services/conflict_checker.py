# booking_engine/services/conflict_checker.py
"""
Conflict Checker Service for the booking engine.

Classifies a proposed booking against existing non-cancelled bookings.
Checks run in a fixed order and stop at the first match:

1. exact duplicate (same teacher, student, date, start and end)
2. teacher overlap
3. student overlap

Availability records are never consulted; availability is advisory and
only feeds the discovery queries.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import BookingConflictException, ValidationException
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)

DUPLICATE_CONFLICT_MESSAGE = "An identical booking already exists for this teacher and student"
TEACHER_CONFLICT_MESSAGE = "The teacher already has a booking that overlaps this time"
STUDENT_CONFLICT_MESSAGE = "The student already has a booking that overlaps this time"


class ConflictKind(str, Enum):
    DUPLICATE = "duplicate"
    TEACHER_OVERLAP = "teacher_overlap"
    STUDENT_OVERLAP = "student_overlap"

    @property
    def scope(self) -> str:
        return {
            ConflictKind.DUPLICATE: "both",
            ConflictKind.TEACHER_OVERLAP: "teacher",
            ConflictKind.STUDENT_OVERLAP: "student",
        }[self]


_CONFLICT_MESSAGES = {
    ConflictKind.DUPLICATE: DUPLICATE_CONFLICT_MESSAGE,
    ConflictKind.TEACHER_OVERLAP: TEACHER_CONFLICT_MESSAGE,
    ConflictKind.STUDENT_OVERLAP: STUDENT_CONFLICT_MESSAGE,
}


@dataclass(frozen=True)
class ConflictResult:
    kind: Optional[ConflictKind] = None
    existing: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_conflict(self) -> bool:
        return self.kind is not None

    @property
    def message(self) -> Optional[str]:
        return _CONFLICT_MESSAGES[self.kind] if self.kind else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_conflicts": self.has_conflict,
            "type": self.kind.value if self.kind else None,
            "message": self.message,
            "existing": self.existing or None,
        }


def summarize_booking(row: Dict[str, Any]) -> Dict[str, Any]:
    """Identity of an existing booking, suitable for error details."""
    session_date = row.get("session_date")
    start, end = row.get("start_time"), row.get("end_time")
    return {
        "id": row.get("id"),
        "teacher_id": row.get("teacher_id"),
        "student_id": row.get("student_id"),
        "date": session_date.isoformat() if isinstance(session_date, date) else session_date,
        "start_time": start.strftime("%H:%M") if isinstance(start, time) else start,
        "end_time": end.strftime("%H:%M") if isinstance(end, time) else end,
        "status": row.get("status"),
    }


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts and time validation.

    Works entirely with booking rows; the per-person lookups are delegated
    to ConflictCheckerRepository.
    """

    def __init__(self, db: Session, repository: Optional[ConflictCheckerRepository] = None):
        """
        Initialize conflict checker service.

        Args:
            db: Database session
            repository: Optional ConflictCheckerRepository instance
        """
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)

    @staticmethod
    def validate_time_range(start_time: time, end_time: time) -> None:
        """Reject empty or inverted ranges; bookings are half-open [start, end)."""
        if end_time <= start_time:
            raise ValidationException.for_field(
                "end_time", "End time must be after start time"
            )

    @BaseService.measure_operation("check_conflicts")
    def check_conflicts(
        self,
        teacher_id: int,
        student_id: int,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> ConflictResult:
        """
        Classify a proposed booking.

        Args:
            teacher_id: Teacher being booked
            student_id: Student being booked
            booking_date: Session date
            start_time: Start of the proposed range
            end_time: End of the proposed range (exclusive)
            exclude_booking_id: Booking to ignore (the row being updated)

        Returns:
            ConflictResult; ``has_conflict`` is False when the slot is free
        """
        self.validate_time_range(start_time, end_time)

        duplicate = self.repository.find_duplicate(
            teacher_id, student_id, booking_date, start_time, end_time, exclude_booking_id
        )
        if duplicate:
            return self._conflict(ConflictKind.DUPLICATE, duplicate)

        teacher_clash = self.repository.find_overlap(
            "teacher", teacher_id, booking_date, start_time, end_time, exclude_booking_id
        )
        if teacher_clash:
            return self._conflict(ConflictKind.TEACHER_OVERLAP, teacher_clash)

        student_clash = self.repository.find_overlap(
            "student", student_id, booking_date, start_time, end_time, exclude_booking_id
        )
        if student_clash:
            return self._conflict(ConflictKind.STUDENT_OVERLAP, student_clash)

        return ConflictResult()

    def _conflict(self, kind: ConflictKind, row: Dict[str, Any]) -> ConflictResult:
        existing = summarize_booking(row)
        self.logger.info(
            f"Booking conflict detected: {kind.value} with booking {existing['id']}",
            extra={"conflict_type": kind.value, "existing_booking_id": existing["id"]},
        )
        return ConflictResult(kind=kind, existing=existing)

    def raise_for_conflicts(
        self,
        teacher_id: int,
        student_id: int,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        """Run check_conflicts and raise BookingConflictException on a match."""
        result = self.check_conflicts(
            teacher_id, student_id, booking_date, start_time, end_time, exclude_booking_id
        )
        kind = result.kind
        if kind is None:
            return

        prometheus_metrics.record_booking_conflict(kind.value)
        raise BookingConflictException(
            result.message,
            details={
                "conflict_type": kind.value,
                "conflict_scope": kind.scope,
                "existing_booking": result.existing,
            },
        )
