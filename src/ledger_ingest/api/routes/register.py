"""
Route registration entry point for the FastAPI application.

Keeps the public ``register_routes(app, service)`` API small while the
implementation lives in focused router modules.
"""

from fastapi import FastAPI

from ledger_ingest.api.routes import health, messages
from ledger_ingest.services.messages import MessageService


def register_routes(app: FastAPI, service: MessageService) -> None:
    """Register all JSON API routes with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(messages.router(service))
