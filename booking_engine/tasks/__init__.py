# booking_engine/tasks/__init__.py
"""
Celery tasks package for the booking engine.

Contains the status lifecycle task that auto-completes elapsed bookings.
"""

from booking_engine.tasks.celery_app import BaseTask, celery_app
from booking_engine.tasks.schedule_status import auto_complete_elapsed_bookings

__all__ = [
    "BaseTask",
    "auto_complete_elapsed_bookings",
    "celery_app",
]
