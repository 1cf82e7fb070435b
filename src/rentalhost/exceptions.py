"""Domain errors raised by the service layer and mapped to HTTP responses in the app."""

from __future__ import annotations


class RentalHostError(Exception):
    """Base class for errors with a client-facing message."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(RentalHostError):
    status_code = 400


class AuthenticationError(RentalHostError):
    status_code = 401


class PermissionDeniedError(RentalHostError):
    status_code = 403


class NotFoundError(RentalHostError):
    status_code = 404


class ConflictError(RentalHostError):
    status_code = 409


class CalendarFetchError(RentalHostError):
    """An ICS feed could not be downloaded."""

    status_code = 502


class EncryptionError(RentalHostError):
    pass


class EmailDeliveryError(RentalHostError):
    status_code = 500


class ConfigurationError(RentalHostError):
    """A required setting or secret is missing or malformed."""
