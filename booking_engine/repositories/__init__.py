"""
Repository Pattern Implementation for the booking engine.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- RepositoryFactory: Factory for creating repository instances
- BookingRepository: Booking rows written through the resolved date column
- ConflictCheckerRepository: Duplicate/overlap lookups and booking locks
- AvailabilityRepository: Daily availability rows per role
- StatusLifecycleRepository: Elapsed-booking claims and the auto-update log

Usage:
    from booking_engine.repositories import RepositoryFactory

    repository = RepositoryFactory.create_conflict_checker_repository(db)
    existing = repository.find_overlap("teacher", teacher_id, day, start, end)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .status_lifecycle_repository import StatusLifecycleRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "ConflictCheckerRepository",
    "RepositoryFactory",
    "StatusLifecycleRepository",
]
