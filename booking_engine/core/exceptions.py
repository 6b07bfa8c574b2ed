# booking_engine/core/exceptions.py
"""
Domain-specific exceptions for the booking engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError, OperationalError

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Convert to HTTPException using the subclass status code."""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationException":
        """Build a validation error carrying a single field-level message."""
        return cls(
            message,
            code="VALIDATION_ERROR",
            details={"errors": [{"field": field, "message": message}]},
        )

    @classmethod
    def for_fields(cls, errors: List[Dict[str, str]]) -> "ValidationException":
        message = errors[0]["message"] if len(errors) == 1 else "Invalid request data"
        return cls(message, code="VALIDATION_ERROR", details={"errors": errors})

    @property
    def fields(self) -> List[str]:
        return [err.get("field", "") for err in self.details.get("errors", [])]


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the caller lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message or "An error occurred processing your request",
            "code": self.code,
            "details": self.details if self.details else {},
        }


class ServiceUnavailableException(ServiceException):
    """Raised for transient infrastructure failures; interactive callers may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retry_after_seconds = 2

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or "Service temporarily unavailable. Please retry.",
            code="SERVICE_UNAVAILABLE",
            details=details or {},
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail=self.to_dict(),
            headers={"Retry-After": str(self.retry_after_seconds)},
        )


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a booking conflicts with existing bookings."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )

    @property
    def conflict_type(self) -> Optional[str]:
        return self.details.get("conflict_type")

    @property
    def existing_booking_id(self) -> Optional[int]:
        existing = self.details.get("existing_booking") or {}
        return existing.get("id")


class ReferentialIntegrityException(BusinessRuleException):
    """Raised when the store rejects a write on a foreign-key or check constraint."""

    FOREIGN_KEY = "fk"
    CHECK = "check"

    def __init__(self, field: str, message: str, *, constraint: Optional[str] = None):
        code = "REFERENCE_MISSING" if field == self.FOREIGN_KEY else "INVARIANT_VIOLATION"
        details: Dict[str, Any] = {"errors": [{"field": field, "message": message}]}
        if constraint:
            details["constraint"] = constraint
        super().__init__(message=message, code=code, details=details)
        self.field = field


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations. The originating database error is chained
    as ``__cause__``.
    """


_TRANSIENT_ERROR_SNIPPETS = (
    "server closed the connection",
    "ssl connection has been closed unexpectedly",
    "could not connect to server",
    "connection refused",
    "connection reset",
    "connection timed out",
    "timeout expired",
    "etimedout",
    "fetch failed",
    "database is locked",
    "queuepool",
)


def is_db_pool_exhaustion(exc: BaseException) -> bool:
    """
    Check if an exception indicates DB connection pool exhaustion.

    This is a common failure mode under high load when all database
    connections are in use and new requests time out waiting.
    """
    error_str = str(exc).lower()
    return "queuepool" in error_str or (
        "timeout" in error_str and ("connection" in error_str or "pool" in error_str)
    )


def is_transient_db_error(exc: BaseException) -> bool:
    """Return True for connection/timeout failures worth retrying."""
    candidate: Optional[BaseException] = exc
    while candidate is not None:
        if isinstance(candidate, DBAPIError) and candidate.connection_invalidated:
            return True
        message = str(candidate).lower()
        if any(snippet in message for snippet in _TRANSIENT_ERROR_SNIPPETS):
            return True
        if isinstance(candidate, (TimeoutError, ConnectionError)):
            return True
        candidate = candidate.__cause__
    return isinstance(exc, OperationalError) and is_db_pool_exhaustion(exc)
