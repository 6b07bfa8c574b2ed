# booking_engine/repositories/factory.py
"""
Repository Factory for the booking engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from ..core.enums import ParticipantRole

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .booking_repository import BookingRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .status_lifecycle_repository import StatusLifecycleRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations in tests.
    """

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking rows."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking operations."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_availability_repository(
        db: Session, role: ParticipantRole
    ) -> "AvailabilityRepository":
        """Create repository for one role's availability rows."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db, role)

    @staticmethod
    def create_status_lifecycle_repository(db: Session) -> "StatusLifecycleRepository":
        """Create repository for the status lifecycle job."""
        from .status_lifecycle_repository import StatusLifecycleRepository

        return StatusLifecycleRepository(db)
