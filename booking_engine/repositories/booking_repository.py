# booking_engine/repositories/booking_repository.py
"""
Booking Repository for the booking engine.

Booking rows are read and written through SQL built on the SchemaAdapter's
session-date column, so inserts land in whichever historical date column
the live table carries and updates touch only the supplied columns.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import Date, DateTime, Integer, String, Time, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ParticipantRole
from ..core.exceptions import RepositoryException
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Logical field -> physical column; session_date resolves through the SchemaAdapter
UPDATABLE_COLUMNS = (
    "teacher_id",
    "student_id",
    "course_id",
    "session_date",
    "start_time",
    "end_time",
    "status",
    "location",
    "transport_fee",
    "other_fee",
)

_BIND_TYPES = {
    "session_date": Date,
    "start_time": Time,
    "end_time": Time,
    "created_at": DateTime,
    "updated_at": DateTime,
}

_PARTICIPANT_TABLES = {
    ParticipantRole.TEACHER: "teachers",
    ParticipantRole.STUDENT: "students",
}


class BookingRepository(BaseRepository[Booking]):
    """Data access for booking (course arrangement) rows."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def _typed(self, sql: str, names: Any) -> Any:
        stmt = text(sql)
        binds = [bindparam(name, type_=_BIND_TYPES[name]()) for name in names if name in _BIND_TYPES]
        return stmt.bindparams(*binds) if binds else stmt

    def get_row(self, booking_id: int) -> Optional[Dict[str, Any]]:
        """Fetch one booking with its resolved session date."""
        date_expr = self.schema.resolve_date_expression("ca", via=self.db)
        stmt = text(
            "SELECT ca.id, ca.teacher_id, ca.student_id, ca.course_id, "
            f"{date_expr} AS session_date, ca.start_time, ca.end_time, ca.status, "
            "ca.location, ca.transport_fee, ca.other_fee, ca.last_auto_update, ca.created_by "
            f"FROM {self.schema.table} ca WHERE ca.id = :booking_id"
        ).columns(
            id=Integer,
            teacher_id=Integer,
            student_id=Integer,
            course_id=Integer,
            session_date=Date,
            start_time=Time,
            end_time=Time,
            status=String,
            last_auto_update=DateTime,
        )
        try:
            row = self.db.execute(stmt, {"booking_id": booking_id}).mappings().first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve booking: {str(e)}") from e
        return dict(row) if row else None

    def insert_booking(self, values: Mapping[str, Any]) -> int:
        """
        Insert a booking row and return its id.

        ``values`` uses logical names; ``session_date`` is written to the
        preferred physical date column.
        """
        write_column = self.schema.date_write_column(via=self.db)
        columns = []
        placeholders = []
        for name in values:
            columns.append(write_column if name == "session_date" else name)
            placeholders.append(f":{name}")

        sql = (
            f"INSERT INTO {self.schema.table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )
        returning = bool(getattr(self.db.get_bind().dialect, "insert_returning", False))
        if returning:
            sql += " RETURNING id"
        try:
            result = self.db.execute(self._typed(sql, values.keys()), dict(values))
            booking_id = result.scalar_one() if returning else result.lastrowid
        except SQLAlchemyError as e:
            self.logger.error(f"Error inserting booking: {str(e)}")
            raise RepositoryException(f"Failed to create booking: {str(e)}") from e
        return int(booking_id)

    def update_fields(self, booking_id: int, fields: Mapping[str, Any], now: datetime) -> int:
        """
        Issue one UPDATE containing only ``fields`` plus ``updated_at``.

        Returns:
            Number of rows updated
        """
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported booking columns: {sorted(unknown)}")

        write_column = self.schema.date_write_column(via=self.db)
        assignments = [
            f"{write_column if name == 'session_date' else name} = :{name}" for name in fields
        ]
        assignments.append("updated_at = :updated_at")
        params = dict(fields)
        params["updated_at"] = now
        params["booking_id"] = booking_id

        sql = f"UPDATE {self.schema.table} SET {', '.join(assignments)} WHERE id = :booking_id"
        try:
            result = self.db.execute(self._typed(sql, params.keys()), params)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking: {str(e)}") from e
        return int(result.rowcount or 0)

    def get_participant_status(
        self, role: ParticipantRole, person_id: int
    ) -> Tuple[bool, Optional[int]]:
        """
        Look up a teacher or student.

        Returns:
            (exists, status) where status is None when the table has no
            status column
        """
        table = _PARTICIPANT_TABLES[role]
        has_status = self.schema.has_status_column(table, via=self.db)
        columns = "id, status" if has_status else "id"
        try:
            row = (
                self.db.execute(
                    text(f"SELECT {columns} FROM {table} WHERE id = :person_id"),
                    {"person_id": person_id},
                )
                .mappings()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading {role.value} {person_id}: {str(e)}")
            raise RepositoryException(f"Failed to load {role.value}: {str(e)}") from e
        if row is None:
            return False, None
        return True, (int(row["status"]) if has_status and row["status"] is not None else None)
