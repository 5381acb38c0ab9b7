"""Typed exceptions for the document store layer.

The gateway never lets a raw driver exception escape. Every failure is
mapped to one of the classes below so callers can decide what to do without
knowing about pymongo:

    StoreUnavailable   the store cannot be reached (connection, server selection)
    OperationTimeout   the per-call deadline expired
    WriteRejected      the store refused the write (write/constraint errors)
    StoreReadError     any other failure while reading
    StoreWriteError    any other failure while writing or deleting

The ingestion subscriber treats all of them as "drop and continue"; the
query service translates them into caller-facing errors.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class StoreOperationContext:
    """Structured operation metadata carried by store exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"messages.insert"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class StoreError(RuntimeError):
    """Base exception for store-layer failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: StoreOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
        self.context = context
        self.cause = cause


class StoreUnavailable(StoreError):
    """The store could not be reached."""


class OperationTimeout(StoreError):
    """The operation did not finish before its deadline."""


class WriteRejected(StoreError):
    """The store rejected a write."""


class StoreReadError(StoreError):
    """Unclassified read/query failure."""


class StoreWriteError(StoreError):
    """Unclassified insert/delete failure."""
