# booking_engine/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the booking engine.

Looks up existing non-cancelled bookings that duplicate or overlap a
proposed (person, date, time range). Queries are written against the
session-date expression resolved by the SchemaAdapter so they work on
every historical shape of the booking table.
"""

from datetime import date, time
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import Date, Integer, String, Time, bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Namespaces for pg_advisory_xact_lock(int, int)
_TEACHER_LOCK_NAMESPACE = 7301
_STUDENT_LOCK_NAMESPACE = 7302

_PERSON_COLUMNS = {"teacher": "teacher_id", "student": "student_id"}


class ConflictCheckerRepository(BaseRepository[Booking]):
    """
    Repository for conflict checking data access.

    Works exclusively with booking rows; availability records are never
    consulted here.
    """

    def __init__(self, db: Session):
        """Initialize with Booking model as primary."""
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def _select_clause(self) -> Tuple[str, str]:
        date_expr = self.schema.resolve_date_expression("ca", via=self.db)
        return (
            "SELECT ca.id, ca.teacher_id, ca.student_id, "
            f"{date_expr} AS session_date, ca.start_time, ca.end_time, ca.status "
            f"FROM {self.schema.table} ca "
        ), date_expr

    def _fetch_first(self, sql: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        stmt = (
            text(sql)
            .bindparams(
                bindparam("session_date", type_=Date),
                bindparam("start_time", type_=Time),
                bindparam("end_time", type_=Time),
                bindparam("cancelled", type_=String),
            )
            .columns(
                id=Integer,
                teacher_id=Integer,
                student_id=Integer,
                session_date=Date,
                start_time=Time,
                end_time=Time,
                status=String,
            )
        )
        row = self.db.execute(stmt, params).mappings().first()
        return dict(row) if row else None

    # Booking Conflict Queries

    def find_duplicate(
        self,
        teacher_id: int,
        student_id: int,
        session_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Active booking with the same teacher, student, date and identical times.

        Returns:
            The existing booking as a mapping, or None
        """
        select_sql, date_expr = self._select_clause()
        sql = (
            select_sql
            + "WHERE ca.teacher_id = :teacher_id AND ca.student_id = :student_id "
            f"AND {date_expr} = :session_date "
            "AND ca.start_time = :start_time AND ca.end_time = :end_time "
            "AND ca.status <> :cancelled"
        )
        params: Dict[str, Any] = {
            "teacher_id": teacher_id,
            "student_id": student_id,
            "session_date": session_date,
            "start_time": start_time,
            "end_time": end_time,
            "cancelled": BookingStatus.CANCELLED.value,
        }
        if exclude_booking_id is not None:
            sql += " AND ca.id <> :exclude_id"
            params["exclude_id"] = exclude_booking_id
        sql += " ORDER BY ca.id LIMIT 1"
        try:
            return self._fetch_first(sql, params)
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking duplicate booking: {str(e)}")
            raise RepositoryException(f"Failed to check duplicate bookings: {str(e)}") from e

    def find_overlap(
        self,
        role: str,
        person_id: int,
        session_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        First active booking for ``person_id`` whose [start, end) intersects the range.

        Args:
            role: "teacher" or "student"
        """
        column = _PERSON_COLUMNS[role]
        select_sql, date_expr = self._select_clause()
        sql = (
            select_sql
            + f"WHERE ca.{column} = :person_id "
            f"AND {date_expr} = :session_date "
            "AND ca.start_time < :end_time AND ca.end_time > :start_time "
            "AND ca.status <> :cancelled"
        )
        params: Dict[str, Any] = {
            "person_id": person_id,
            "session_date": session_date,
            "start_time": start_time,
            "end_time": end_time,
            "cancelled": BookingStatus.CANCELLED.value,
        }
        if exclude_booking_id is not None:
            sql += " AND ca.id <> :exclude_id"
            params["exclude_id"] = exclude_booking_id
        sql += " ORDER BY ca.start_time, ca.id LIMIT 1"
        try:
            return self._fetch_first(sql, params)
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking {role} overlap: {str(e)}")
            raise RepositoryException(f"Failed to check {role} conflicts: {str(e)}") from e

    def acquire_booking_locks(self, teacher_id: int, student_id: int) -> bool:
        """
        Serialize check-and-insert per teacher and per student.

        Takes transaction-scoped advisory locks on PostgreSQL; other dialects
        have no equivalent and return False without locking.
        """
        if self.dialect_name != "postgresql":
            return False
        try:
            # Fixed order (teacher, then student) so concurrent writers cannot deadlock
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(:ns, :id)"),
                {"ns": _TEACHER_LOCK_NAMESPACE, "id": teacher_id},
            )
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(:ns, :id)"),
                {"ns": _STUDENT_LOCK_NAMESPACE, "id": student_id},
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error acquiring booking locks: {str(e)}")
            raise RepositoryException(f"Failed to acquire booking locks: {str(e)}") from e
        return True
