"""JSON API routers."""

from ledger_ingest.api.routes.register import register_routes

__all__ = ["register_routes"]
