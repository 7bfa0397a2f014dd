"""
Error taxonomy for the booking engine.

Every failure a caller is expected to handle has its own exception type and an
``ErrorKind``. Routes translate kinds to HTTP status codes in one place
(``routes/_errors.py``); anything that is not a ``BookingError`` is an
unexpected failure and surfaces as a 500.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable category of a booking engine failure."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    GATEWAY_ERROR = "gateway_error"
    GATEWAY_TIMEOUT = "gateway_timeout"
    SIGNATURE_INVALID = "signature_invalid"


class BookingError(Exception):
    """
    Base class for expected booking engine failures.

    Attributes:
        kind: Category used for HTTP mapping and caller branching
        message: Human readable description
        details: Structured context (e.g. ids of clashing reservations)
        retryable: Whether repeating the same request may succeed
    """

    kind: ErrorKind = ErrorKind.BAD_REQUEST
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error body."""
        return {"error": self.kind.value, "message": self.message, "details": self.details}


class NotFoundError(BookingError):
    """Unknown reservation, payment attempt, property or user."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(BookingError):
    """Date overlap on checkout, or duplicate external import."""

    kind = ErrorKind.CONFLICT


class BadRequestError(BookingError):
    """Request cannot be satisfied as sent (e.g. external import date clash)."""

    kind = ErrorKind.BAD_REQUEST


class ValidationError(BookingError):
    """Input values are malformed or out of range."""

    kind = ErrorKind.VALIDATION


class InvalidTransitionError(BookingError):
    """Requested status/payment-status edge is not in the state graph."""

    kind = ErrorKind.INVALID_TRANSITION


class UnauthorizedError(BookingError):
    """Caller identity missing or unknown."""

    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(BookingError):
    """Caller has no rights over the reservation or property."""

    kind = ErrorKind.FORBIDDEN


class GatewayError(BookingError):
    """Payment provider call failed or returned malformed data."""

    kind = ErrorKind.GATEWAY_ERROR


class GatewayTimeoutError(GatewayError):
    """Payment provider did not answer in time. Safe to retry."""

    kind = ErrorKind.GATEWAY_TIMEOUT
    retryable = True


class SignatureInvalidError(BookingError):
    """Webhook authenticity check failed. Never retried."""

    kind = ErrorKind.SIGNATURE_INVALID
