"""Typed failures raised by the scheduling engine.

Every failure path in the engine raises one of these; the HTTP layer turns
them into responses with ``to_http_exception``.
"""

from typing import Any

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class SchedulingError(Exception):
    """Base class for all scheduling failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        detail = {
            'message': self.message,
            'code': self.code,
            'details': self.details,
        }
        if self.retryable:
            detail['retryable'] = True
        return HTTPException(status_code=self.status_code, detail=detail)


class FormatError(SchedulingError):
    """Malformed time, date or window input."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(SchedulingError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(SchedulingError):
    """An availability window would overlap another active window."""

    status_code = status.HTTP_409_CONFLICT


class DependencyError(SchedulingError):
    """Deletion blocked by upcoming appointments."""

    status_code = status.HTTP_409_CONFLICT


class BookingPolicyError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST


class PastDateError(BookingPolicyError):
    pass


class InsufficientLeadTimeError(BookingPolicyError):
    pass


class BookingWindowExceededError(BookingPolicyError):
    pass


class InvalidDurationError(BookingPolicyError):
    pass


class InstructorUnavailableError(SchedulingError):
    status_code = HTTP_422_UNPROCESSABLE


class SlotNoLongerAvailableError(SchedulingError):
    """Lost the commit-time race for a slot; the client should refresh availability."""

    status_code = status.HTTP_409_CONFLICT


class StorageTimeoutError(SchedulingError, TimeoutError):
    """A storage call ran past the caller's deadline. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
