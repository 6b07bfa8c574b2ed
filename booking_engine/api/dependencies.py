# booking_engine/api/dependencies.py
"""
FastAPI dependency providers for the booking engine services.

Each provider builds a service around the request-scoped session from
``get_db``.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..core.enums import ParticipantRole
from ..database import get_db
from ..services.availability_service import AvailabilityService
from ..services.booking_service import BookingService
from ..services.status_lifecycle_service import StatusLifecycleService


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """
    Get booking service instance with all dependencies.

    Args:
        db: Database session

    Returns:
        BookingService instance
    """
    return BookingService(db)


def get_availability_service(
    role: ParticipantRole, db: Session = Depends(get_db)
) -> AvailabilityService:
    """Availability service for the role named in the path."""
    return AvailabilityService(db, role)


def get_status_lifecycle_service(db: Session = Depends(get_db)) -> StatusLifecycleService:
    return StatusLifecycleService(db)
