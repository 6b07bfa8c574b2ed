# booking_engine/services/status_lifecycle_service.py
"""
Status Lifecycle Service for the booking engine.

Moves pending and confirmed bookings whose scheduled time has passed to
``completed``. Work happens in batches; each batch is its own transaction
that claims rows with a guarded UPDATE and appends one audit log row per
transition. Transient database failures are retried per batch with a
linear delay. The run itself never raises: failures come back as a
``JobRunResult`` with ``success=False`` and trigger an alert.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
import time
from typing import Any, Callable, Dict, List, Optional
import uuid

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.timezone_utils import get_schedule_today_and_time, utc_now
from ..database import with_db_retry
from ..database.session_utils import supports_update_returning
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.status_lifecycle_repository import StatusLifecycleRepository
from .alert_notifier import AlertNotifier
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass
class JobRunResult:
    success: bool
    run_id: str
    updated_count: int = 0
    batches: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "updatedCount": self.updated_count, "runId": self.run_id}
        return {"success": False, "error": self.error, "runId": self.run_id}


class StatusLifecycleService(BaseService):
    """Auto-completes elapsed bookings."""

    def __init__(
        self,
        db: Session,
        repository: Optional[StatusLifecycleRepository] = None,
        notifier: Optional[AlertNotifier] = None,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_status_lifecycle_repository(db)
        self.notifier = notifier or AlertNotifier()
        self.batch_size = batch_size or settings.status_job_batch_size
        self.max_retries = max_retries or settings.status_job_max_retries
        self.retry_delay_ms = (
            retry_delay_ms if retry_delay_ms is not None else settings.status_job_retry_delay_ms
        )
        self._sleep = sleep

    def _process_batch(self, run_id: str, now: Optional[datetime]) -> int:
        """
        Claim and log one batch.

        Returns:
            Number of bookings transitioned, 0 when nothing was eligible
        """
        today, now_time = get_schedule_today_and_time(now)
        stamped_at = utc_now(now)
        try:
            candidates = self.repository.select_elapsed_batch(today, now_time, self.batch_size)
            if not candidates:
                self.db.rollback()
                return 0

            previous = {row["id"]: row["status"] for row in candidates}
            claimed = self.repository.complete_bookings(
                list(previous),
                today,
                now_time,
                stamped_at,
                use_returning=supports_update_returning(self.db),
            )
            self.repository.insert_logs(
                [{"id": booking_id, "previous_status": previous[booking_id]} for booking_id in claimed],
                run_id,
                stamped_at,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if len(claimed) < len(candidates):
            self.logger.info(
                f"{len(candidates) - len(claimed)} bookings in batch were claimed elsewhere",
                extra={"run_id": run_id},
            )
        return len(claimed)

    @BaseService.measure_operation("run_status_job")
    def run(self, now: Optional[datetime] = None) -> JobRunResult:
        """
        Complete every elapsed booking.

        Args:
            now: Reference instant (defaults to the current time)

        Returns:
            JobRunResult summarizing the run
        """
        run_id = str(uuid.uuid4())
        result = JobRunResult(success=True, run_id=run_id)
        self.logger.info(f"Status lifecycle job started: run {run_id}", extra={"run_id": run_id})

        try:
            while True:
                updated = with_db_retry(
                    "status_lifecycle_batch",
                    lambda: self._process_batch(run_id, now),
                    max_attempts=self.max_retries,
                    delay_seconds=self.retry_delay_ms / 1000.0,
                    sleep=self._sleep,
                )
                if updated == 0:
                    break
                result.batches += 1
                result.updated_count += updated
        except Exception as e:
            result.success = False
            result.error = str(e)
            self.logger.error(
                f"Status lifecycle job failed: {str(e)}",
                extra={"run_id": run_id, "updated_count": result.updated_count},
                exc_info=True,
            )

        prometheus_metrics.record_status_job_run(result.success, result.updated_count)
        if result.success:
            self.log_operation(
                "run_status_job",
                run_id=run_id,
                updated_count=result.updated_count,
                batches=result.batches,
            )
        else:
            self.notifier.notify_job_failure(result)
        return result

    def recent_auto_update_logs(self, run_id: str) -> List[Dict[str, Any]]:
        """Audit rows written by one run."""
        return [log.to_dict() for log in self.repository.logs_for_run(run_id)]
