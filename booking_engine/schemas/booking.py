# booking_engine/schemas/booking.py
"""
Booking schemas for the booking engine.

Times travel as ``HH:MM`` strings and are parsed into ``time`` objects
here; range checks (end after start), status legality and participant
eligibility are enforced by BookingService.
"""

from datetime import date, time
import re
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field, field_validator

from ._strict_base import StrictModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM_REGEX = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def parse_hhmm(value: object) -> object:
    """Convert an ``HH:MM`` string to a time; other types pass through to pydantic."""
    if isinstance(value, str):
        match = HHMM_REGEX.fullmatch(value.strip())
        if not match:
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
        return time(int(match.group(1)), int(match.group(2)))
    return value


class BookingCreate(StrictRequestModel):
    """
    Create a booking between a teacher and one or more students.

    Only the first student is booked; the remaining ids are reported back
    as ``skipped_students``.
    """

    teacher_id: int = Field(..., validation_alias=AliasChoices("teacher_id", "teacherId"))
    student_ids: List[int] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("student_ids", "studentIds", "student_id", "studentId"),
        description="Students to book; surplus ids beyond the first are skipped",
    )
    course_id: int = Field(
        ...,
        validation_alias=AliasChoices("course_id", "courseId", "type_id", "typeId"),
        description="Schedule type",
    )
    session_date: date = Field(
        ...,
        validation_alias=AliasChoices("session_date", "date", "arr_date", "class_date"),
    )
    start_time: time = Field(..., validation_alias=AliasChoices("start_time", "startTime"))
    end_time: time = Field(..., validation_alias=AliasChoices("end_time", "endTime"))
    status: Optional[str] = Field(None, description="Initial status; defaults to pending")
    location: Optional[str] = Field(None, max_length=500)
    transport_fee: float = Field(0, ge=0)
    other_fee: float = Field(0, ge=0)

    @field_validator("student_ids", mode="before")
    @classmethod
    def _coerce_single_student(cls, v: object) -> object:
        if isinstance(v, (int, str)):
            return [v]
        return v

    @field_validator("session_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "date")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time_string(cls, v: object) -> object:
        """Convert time strings to time objects."""
        return parse_hhmm(v)

    @field_validator("location")
    @classmethod
    def clean_location(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class BookingUpdate(StrictRequestModel):
    """Partial update; only fields explicitly supplied are written."""

    teacher_id: Optional[int] = Field(None, validation_alias=AliasChoices("teacher_id", "teacherId"))
    student_id: Optional[int] = Field(None, validation_alias=AliasChoices("student_id", "studentId"))
    course_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("course_id", "courseId", "type_id", "typeId")
    )
    session_date: Optional[date] = Field(
        None, validation_alias=AliasChoices("session_date", "date", "arr_date", "class_date")
    )
    start_time: Optional[time] = Field(None, validation_alias=AliasChoices("start_time", "startTime"))
    end_time: Optional[time] = Field(None, validation_alias=AliasChoices("end_time", "endTime"))
    status: Optional[str] = None
    location: Optional[str] = Field(None, max_length=500)
    transport_fee: Optional[float] = Field(None, ge=0)
    other_fee: Optional[float] = Field(None, ge=0)

    @field_validator("session_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "date")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time_string(cls, v: object) -> object:
        return parse_hhmm(v)

    def supplied_fields(self) -> Dict[str, Any]:
        """Fields the caller actually sent (explicit nulls included)."""
        return self.model_dump(exclude_unset=True)


class BookingCreateResponse(StrictModel):
    id: int
    skipped_students: int
    booking: Dict[str, Any]
