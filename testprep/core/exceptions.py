"""
Domain errors raised by the attempt and payment engines.

Every error carries the HTTP status it maps to; ``main.py`` registers a
single handler for ``AppError`` that renders ``{"detail": message}``.
"""
from fastapi import status


class AppError(Exception):
    """Base class for errors that are surfaced to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AppError):
    """Test, attempt, question, plan or payment does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class AccessDenied(AppError):
    """Entitlement check failed, or the requester does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class InvalidState(AppError):
    """Operation not allowed in the attempt's or payment's current state."""

    status_code = status.HTTP_409_CONFLICT


class ValidationFailed(AppError):
    """Malformed input or signature mismatch."""

    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(AppError):
    """Lost a uniqueness race (attempt number, test number)."""

    status_code = status.HTTP_409_CONFLICT


class PaymentGatewayError(AppError):
    """The payment gateway rejected or failed an order request."""

    status_code = status.HTTP_502_BAD_GATEWAY
