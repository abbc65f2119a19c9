"""Domain errors raised by the availability and booking services.

Route handlers convert them with ``to_http_exception`` so callers can branch
on ``detail.code`` (``CAPACITY_FULL``, ``INVALID_TRANSITION`` ...).
"""

from typing import Any

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = 'DOMAIN_ERROR'

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                'message': self.message,
                'code': self.code,
                'details': self.details,
            },
        )


class ValidationError(DomainError):
    """Malformed or inconsistent input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'VALIDATION_ERROR'


class ForbiddenError(DomainError):
    """The actor lacks the role, or does not own the row."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'FORBIDDEN'


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'NOT_FOUND'


class CapacityFull(DomainError):
    """No spots left for the requested (teacher, instant) slot."""

    status_code = status.HTTP_409_CONFLICT
    default_code = 'CAPACITY_FULL'


class InvalidTransition(DomainError):
    """Lifecycle action attempted from a terminal or incompatible status."""

    status_code = status.HTTP_409_CONFLICT
    default_code = 'INVALID_TRANSITION'


class DependencyFailure(DomainError):
    """A collaborator required for an all-or-nothing operation failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = 'DEPENDENCY_FAILURE'

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        merged = {'retryable': True}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
