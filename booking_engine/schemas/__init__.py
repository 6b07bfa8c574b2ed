"""Request and response schemas for the booking engine API."""

from .availability import (
    AvailabilityDay,
    AvailabilityDeleteRequest,
    AvailabilityDeleteResponse,
    AvailabilitySetRequest,
    AvailabilitySetResponse,
    AvailablePerson,
)
from .booking import BookingCreate, BookingCreateResponse, BookingUpdate

__all__ = [
    "AvailabilityDay",
    "AvailabilityDeleteRequest",
    "AvailabilityDeleteResponse",
    "AvailabilitySetRequest",
    "AvailabilitySetResponse",
    "AvailablePerson",
    "BookingCreate",
    "BookingCreateResponse",
    "BookingUpdate",
]
