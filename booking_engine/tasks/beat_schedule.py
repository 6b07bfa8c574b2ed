# booking_engine/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for the booking engine.

Crontab entries are interpreted in the Celery app timezone, which is the
schedule timezone (``settings.schedule_timezone``).
"""

from datetime import timedelta
import logging
from typing import Any

from celery.schedules import crontab

from booking_engine.core.config import settings

logger = logging.getLogger(__name__)

STATUS_JOB_TASK = "schedule_status.auto_complete_elapsed_bookings"
DEFAULT_STATUS_JOB_CRON = "30 22 * * *"


def _parse_cron_expression(cron_expr: str) -> Any:
    """Convert a five-field cron expression into a Celery crontab schedule."""
    parts = cron_expr.strip().split()
    if len(parts) != 5:
        logger.warning(
            "Invalid STATUS_JOB_CRON expression '%s'; falling back to %s",
            cron_expr,
            DEFAULT_STATUS_JOB_CRON,
        )
        parts = DEFAULT_STATUS_JOB_CRON.split()
    minute, hour, day_of_month, month_of_year, day_of_week = parts
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


# Schedule overrides per environment
SCHEDULE_CONFIG: dict[str, dict[str, dict[str, Any]]] = {
    "testing": {
        "auto-complete-elapsed-bookings": {
            "task": STATUS_JOB_TASK,
            "schedule": timedelta(seconds=30),
            "options": {"queue": "maintenance", "priority": 5},
        },
    },
}


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    base: dict[str, dict[str, Any]] = {
        "auto-complete-elapsed-bookings": {
            "task": STATUS_JOB_TASK,
            "schedule": _parse_cron_expression(settings.status_job_cron),
            "args": [],
            "kwargs": {},
            "options": {"queue": "maintenance", "priority": 5},
        },
    }
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        base.update(overrides)
    return base
