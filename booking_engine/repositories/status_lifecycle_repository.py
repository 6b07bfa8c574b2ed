# booking_engine/repositories/status_lifecycle_repository.py
"""
Data access for the status lifecycle job.

Selects bookings whose scheduled time has elapsed, claims them with a
guarded UPDATE and appends the audit log rows. The eligibility predicate
is repeated in the UPDATE so rows claimed by a concurrent run are skipped.
"""

from datetime import date, datetime, time
import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy import Date, DateTime, Integer, String, Time, bindparam, insert, select, text
from sqlalchemy.orm import Session

from ..models.booking import AUTO_COMPLETABLE_STATUSES, BookingStatus, ScheduleAutoUpdateLog
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

AUTO_UPDATE_NOTE = "auto_status_update_job"


class StatusLifecycleRepository(BaseRepository[ScheduleAutoUpdateLog]):
    """
    Booking selection/claim queries and the auto-update log.

    Errors propagate as raw SQLAlchemy exceptions: the job's retry wrapper
    classifies them as transient or fatal.
    """

    def __init__(self, db: Session):
        super().__init__(db, ScheduleAutoUpdateLog)

    def _eligibility_sql(self, alias: str) -> str:
        date_expr = self.schema.resolve_date_expression(alias, via=self.db)
        return (
            f"{alias}.status IN (:status_pending, :status_confirmed) "
            f"AND {alias}.last_auto_update IS NULL "
            f"AND ({date_expr} < :today "
            f"OR ({date_expr} = :today AND {alias}.end_time < :now_time))"
        )

    @staticmethod
    def _eligibility_params(today: date, now_time: time) -> Dict[str, Any]:
        pending, confirmed = AUTO_COMPLETABLE_STATUSES
        return {
            "status_pending": pending,
            "status_confirmed": confirmed,
            "today": today,
            "now_time": now_time,
        }

    def _batch_select_sql(self) -> str:
        date_expr = self.schema.resolve_date_expression("ca", via=self.db)
        sql = (
            f"SELECT ca.id, ca.status FROM {self.schema.table} ca "
            f"WHERE {self._eligibility_sql('ca')} "
            f"ORDER BY {date_expr} ASC, ca.id ASC "
            "LIMIT :batch_limit"
        )
        if self.dialect_name == "postgresql":
            # Status read here must still hold when the guarded UPDATE runs
            sql += " FOR UPDATE OF ca SKIP LOCKED"
        return sql

    def select_elapsed_batch(self, today: date, now_time: time, limit: int) -> List[Dict[str, Any]]:
        """Up to ``limit`` eligible bookings, oldest session date first."""
        stmt = (
            text(self._batch_select_sql())
            .bindparams(
                bindparam("today", type_=Date),
                bindparam("now_time", type_=Time),
            )
            .columns(id=Integer, status=String)
        )
        params = self._eligibility_params(today, now_time)
        params["batch_limit"] = limit
        return [dict(row) for row in self.db.execute(stmt, params).mappings().all()]

    def complete_bookings(
        self,
        booking_ids: Sequence[int],
        today: date,
        now_time: time,
        stamped_at: datetime,
        use_returning: bool,
    ) -> List[int]:
        """
        Mark the given bookings completed, re-checking eligibility.

        Returns:
            Ids of the rows this call actually transitioned
        """
        if not booking_ids:
            return []

        table = self.schema.table
        id_params = {f"id_{i}": booking_id for i, booking_id in enumerate(booking_ids)}
        id_list = ", ".join(f":{name}" for name in id_params)
        sql = (
            f"UPDATE {table} SET status = :completed, last_auto_update = :stamped_at, "
            "updated_at = :stamped_at "
            f"WHERE id IN ({id_list}) AND {self._eligibility_sql(table)}"
        )
        if use_returning:
            sql += " RETURNING id"

        stmt = text(sql).bindparams(
            bindparam("today", type_=Date),
            bindparam("now_time", type_=Time),
            bindparam("stamped_at", type_=DateTime),
        )
        params = self._eligibility_params(today, now_time)
        params.update(id_params)
        params["completed"] = BookingStatus.COMPLETED.value
        params["stamped_at"] = stamped_at

        result = self.db.execute(stmt, params)
        if use_returning:
            return sorted(int(row[0]) for row in result.fetchall())

        # No RETURNING: the stamp is unique to this run, so re-read the claimed rows
        claimed = self.db.execute(
            text(
                f"SELECT id FROM {table} WHERE id IN ({id_list}) "
                "AND last_auto_update = :stamped_at AND status = :completed"
            ).bindparams(bindparam("stamped_at", type_=DateTime)),
            {
                **id_params,
                "stamped_at": stamped_at,
                "completed": BookingStatus.COMPLETED.value,
            },
        )
        return sorted(int(row[0]) for row in claimed.fetchall())

    def insert_logs(
        self,
        transitions: Sequence[Dict[str, Any]],
        run_id: str,
        created_at: datetime,
    ) -> int:
        """
        Bulk-insert one audit row per transitioned booking.

        Args:
            transitions: dicts with ``id`` and ``previous_status``
        """
        if not transitions:
            return 0
        rows = [
            {
                "schedule_id": item["id"],
                "previous_status": item["previous_status"],
                "new_status": BookingStatus.COMPLETED.value,
                "run_id": run_id,
                "note": AUTO_UPDATE_NOTE,
                "created_at": created_at,
            }
            for item in transitions
        ]
        self.db.execute(insert(ScheduleAutoUpdateLog), rows)
        return len(rows)

    def logs_for_run(self, run_id: str) -> List[ScheduleAutoUpdateLog]:
        stmt = (
            select(ScheduleAutoUpdateLog)
            .where(ScheduleAutoUpdateLog.run_id == run_id)
            .order_by(ScheduleAutoUpdateLog.schedule_id)
        )
        return list(self.db.execute(stmt).scalars().all())
