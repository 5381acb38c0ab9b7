"""Caller-facing errors raised by the query/delete service.

Every error carries the HTTP-style ``status_code`` the API layer should
answer with, a human-readable ``message`` and, for server-side failures,
the underlying store error as ``cause`` (also chained as ``__cause__``).
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for query/delete service failures."""

    status_code: int = 500

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidRequestError(ServiceError):
    """Caller input was malformed. The store was not touched."""

    status_code = 400


class StorageFailureError(ServiceError):
    """The store failed for a reason other than reachability or time."""

    status_code = 500


class ServiceUnavailableError(ServiceError):
    """The store could not be reached."""

    status_code = 503


class ServiceTimeoutError(ServiceError):
    """The store did not answer before the operation deadline."""

    status_code = 504
