"""HTTP routers for the booking engine API."""

from . import availability, bookings, jobs

__all__ = ["availability", "bookings", "jobs"]
