# booking_engine/repositories/availability_repository.py
"""
Availability Repository for the booking engine.

Per-person daily availability rows for teachers and students. The same
repository serves both roles; the role selects the model, the person
column and the participant table.
"""

from datetime import date, time
import logging
from typing import Any, Dict, List, Sequence, Type, Union

from sqlalchemy import Date, Integer, String, Time, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ParticipantRole, ParticipantStatus, TimeSlot
from ..core.exceptions import RepositoryException
from ..models.availability import StudentDailyAvailability, TeacherDailyAvailability
from ..models.booking import BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

AvailabilityRow = Union[TeacherDailyAvailability, StudentDailyAvailability]

_ROLE_CONFIG: Dict[ParticipantRole, Dict[str, Any]] = {
    ParticipantRole.TEACHER: {
        "model": TeacherDailyAvailability,
        "person_column": "teacher_id",
        "person_table": "teachers",
    },
    ParticipantRole.STUDENT: {
        "model": StudentDailyAvailability,
        "person_column": "student_id",
        "person_table": "students",
    },
}


class AvailabilityRepository(BaseRepository[AvailabilityRow]):
    """Reads and writes daily availability rows for one role."""

    def __init__(self, db: Session, role: ParticipantRole):
        config = _ROLE_CONFIG[role]
        model: Type[AvailabilityRow] = config["model"]
        super().__init__(db, model)
        self.role = role
        self.person_column: str = config["person_column"]
        self.person_table: str = config["person_table"]

    def _person_attr(self) -> Any:
        return getattr(self.model, self.person_column)

    def get_range(self, person_id: int, start_date: date, end_date: date) -> List[AvailabilityRow]:
        """Existing rows for ``person_id`` between the dates (inclusive), by date."""
        try:
            return (
                self.db.query(self.model)
                .filter(
                    self._person_attr() == person_id,
                    self.model.date >= start_date,
                    self.model.date <= end_date,
                )
                .order_by(self.model.date)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability for {self.role.value} {person_id}: {e}")
            raise RepositoryException(f"Failed to get availability: {str(e)}") from e

    def get_for_dates(self, person_id: int, dates: Sequence[date]) -> Dict[date, AvailabilityRow]:
        if not dates:
            return {}
        try:
            rows = (
                self.db.query(self.model)
                .filter(self._person_attr() == person_id, self.model.date.in_(list(dates)))
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability rows: {str(e)}")
            raise RepositoryException(f"Failed to get availability: {str(e)}") from e
        return {row.date: row for row in rows}

    def create_for_date(self, person_id: int, day: date, slots: Dict[TimeSlot, int]) -> AvailabilityRow:
        values: Dict[str, Any] = {self.person_column: person_id, "date": day}
        for slot in TimeSlot:
            values[slot.column] = slots.get(slot, 0)
        return self.create(**values)

    def delete_range(self, person_id: int, start_date: date, end_date: date) -> int:
        """Delete every row in the range; returns the number removed."""
        try:
            deleted = (
                self.db.query(self.model)
                .filter(
                    self._person_attr() == person_id,
                    self.model.date >= start_date,
                    self.model.date <= end_date,
                )
                .delete(synchronize_session="fetch")
            )
            self.db.flush()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting availability: {str(e)}")
            raise RepositoryException(f"Failed to delete availability: {str(e)}") from e

    def person_exists(self, person_id: int) -> bool:
        try:
            row = self.db.execute(
                text(f"SELECT 1 FROM {self.person_table} WHERE id = :person_id"),
                {"person_id": person_id},
            ).first()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load {self.role.value}: {str(e)}") from e
        return row is not None

    def find_available_people(
        self,
        day: date,
        slots: Sequence[TimeSlot],
        start_time: time,
        end_time: time,
    ) -> List[Dict[str, Any]]:
        """
        People with an available overlapping slot on ``day`` and no clashing booking.

        A person qualifies when their row for ``day`` marks at least one of
        ``slots`` available and no non-cancelled booking of theirs on that
        date intersects [start_time, end_time). People with no row are
        excluded. Inactive people are excluded when a status column exists.
        """
        if not slots:
            return []

        availability_table = self.model.__tablename__
        slot_filter = " OR ".join(f"av.{slot.column} = 1" for slot in slots)
        date_expr = self.schema.resolve_date_expression("ca", via=self.db)
        has_status = self.schema.has_status_column(self.person_table, via=self.db)
        status_filter = "AND p.status = :active " if has_status else ""
        status_column = "p.status" if has_status else "NULL"

        sql = (
            f"SELECT DISTINCT p.id, p.name, {status_column} AS status "
            f"FROM {self.person_table} p "
            f"JOIN {availability_table} av ON av.{self.person_column} = p.id "
            "WHERE av.date = :day "
            f"AND ({slot_filter}) "
            f"{status_filter}"
            "AND NOT EXISTS ("
            f"SELECT 1 FROM {self.schema.table} ca "
            f"WHERE ca.{self.person_column} = p.id "
            f"AND {date_expr} = :day "
            "AND ca.start_time < :end_time AND ca.end_time > :start_time "
            "AND ca.status <> :cancelled"
            ") ORDER BY p.id"
        )
        stmt = (
            text(sql)
            .bindparams(
                bindparam("day", type_=Date),
                bindparam("start_time", type_=Time),
                bindparam("end_time", type_=Time),
            )
            .columns(id=Integer, name=String)
        )
        params: Dict[str, Any] = {
            "day": day,
            "start_time": start_time,
            "end_time": end_time,
            "cancelled": BookingStatus.CANCELLED.value,
        }
        if has_status:
            params["active"] = ParticipantStatus.ACTIVE.value
        try:
            rows = self.db.execute(stmt, params).mappings().all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding available {self.role.value}s: {str(e)}")
            raise RepositoryException(f"Failed to find available {self.role.value}s: {e}") from e
        return [dict(row) for row in rows]
