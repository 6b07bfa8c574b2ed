# booking_engine/tasks/schedule_status.py
"""
Periodic booking status maintenance.

Completes bookings whose scheduled time has passed. The service never
raises; failures are reported in the returned summary and through the
alert webhook.
"""

import logging
from typing import Any, Callable, Dict, TypeVar, cast

from celery import shared_task

from booking_engine.database import get_db_session
from booking_engine.services.status_lifecycle_service import StatusLifecycleService

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


def run_status_job() -> Dict[str, Any]:
    """Run one status lifecycle pass in a fresh session."""
    with get_db_session() as db:
        result = StatusLifecycleService(db).run()
    summary = result.to_dict()
    if result.success:
        logger.info("[STATUS-JOB] Completed %d bookings (run %s)", result.updated_count, result.run_id)
    else:
        logger.error("[STATUS-JOB] Run %s failed: %s", result.run_id, result.error)
    return summary


@_typed_shared_task(name="schedule_status.auto_complete_elapsed_bookings")
def auto_complete_elapsed_bookings() -> Dict[str, Any]:
    """Mark pending/confirmed bookings that have ended as completed."""
    return run_status_job()
