"""Exceptions raised by the hyper sender client."""

from typing import Optional


class HyperSenderError(Exception):
    """Base class for all hyper sender errors."""


class ValidationError(HyperSenderError, ValueError):
    """Raised when caller input is malformed or incomplete.

    Validation errors are always raised synchronously and the offending row
    is never cached.
    """


class NullInputError(ValidationError):
    """Raised when a required row, value list or primary value is missing."""


class ConfigurationError(HyperSenderError):
    """Raised when data source metadata or sender configuration is unusable."""


class TransportError(HyperSenderError, IOError):
    """
    Raised when a batch could not be delivered to the index service.

    Attributes:
        status_code: HTTP status returned by the service, if it answered
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
