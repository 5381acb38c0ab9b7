"""Health endpoint.

The version string is read from ``ledger_ingest.__version__`` which is
resolved at import time via ``importlib.metadata``.
"""

from fastapi import APIRouter

from ledger_ingest import __version__
from ledger_ingest.api.models import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check. Does not touch the store."""
    return HealthResponse(status="ok", version=__version__)
