"""Shared helpers for API route modules."""

from fastapi import HTTPException

from ledger_ingest.services.errors import ServiceError


def http_error(exc: ServiceError) -> HTTPException:
    """Translate a service error into the HTTP error it stands for."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)
