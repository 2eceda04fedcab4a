# Exceptions shared by the availability core, the HTTP functions and the client.

from typing import Optional


class BookingError(Exception):
    """Base class. `message` is safe to show to the person booking."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """
    Malformed input: a bad date, a missing required field, an invalid email.
    Surfaced immediately and never retried.
    """


class InvalidSlotFormat(ValidationError):
    """A slot label that is not a valid 24-hour HH:MM string."""


class UpstreamFormatError(BookingError):
    """The automation backend answered with a payload shape we do not recognize."""


class UpstreamUnavailable(BookingError):
    """Network failure or non-2xx answer. Retryable."""

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationDenied(BookingError):
    """The email allow/deny check refused the booking."""

    def __init__(self, reason: str = ""):
        super().__init__(reason)
        self.reason = reason
