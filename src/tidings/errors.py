"""
Error types for Tidings.

Remote failures are classified by HTTP status so callers can tell an
expired token from a busy sync job. None of these are fatal to the process.
"""


class TidingsError(Exception):
    """Base class for all Tidings errors."""


class RemoteError(TidingsError):
    """Non-2xx response (or transport failure) from the remote service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteError):
    """401: the API token is missing, expired or revoked."""


class NotFoundError(RemoteError):
    """404: the requested resource does not exist."""


class BusyError(RemoteError):
    """503/423: a sync job is already running on the remote side."""


class PayloadError(TidingsError):
    """The remote service returned data we could not parse."""
