"""
Booking errors.

Every failure the booking engine reports to its callers is one of these.
Routes turn them into HTTP responses with ``to_http_exception``.
"""

from typing import Any

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for booking failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class ValidationError(BookingError):
    """Malformed input, such as an end time that is not after the start time."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookingError):
    """A referenced slot, appointment, user or location does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(BookingError):
    """The slot is taken or the requested window overlaps an existing slot."""

    status_code = status.HTTP_409_CONFLICT


class ExternalServiceError(BookingError):
    """A calendar call failed. Never propagated past the lifecycle manager."""

    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceError(BookingError):
    """The database transaction failed and was rolled back."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = 'Database unavailable. Please try again later.') -> None:
        super().__init__(message)
