"""
FastAPI application for the ledger message store.

This module builds the application that serves:
- the JSON query/store/delete endpoints backed by ``MessageService``
- the HTML form pages and their static assets
- CORS middleware so other front ends can call the JSON API

``create_app(service)`` is the factory used by tests and by ``serve``;
``build_service()`` wires a service to MongoDB from the configuration.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo import MongoClient

from ledger_ingest import __version__
from ledger_ingest.api.routes import register_routes
from ledger_ingest.config import AppConfig
from ledger_ingest.db.connection import create_client, get_collection
from ledger_ingest.db.errors import StoreError
from ledger_ingest.db.messages_repo import MessageStoreGateway
from ledger_ingest.services.messages import MessageService
from ledger_ingest.web.routes import register_web_routes

logger = logging.getLogger(__name__)


def build_service(cfg: AppConfig | None = None) -> tuple[MessageService, MongoClient]:
    """
    Wire a ``MessageService`` to the configured MongoDB collection.

    Returns:
        The service and the client backing it (the caller closes it).
    """
    if cfg is None:
        from ledger_ingest.config import config as cfg

    client = create_client(cfg.store)
    gateway = MessageStoreGateway(
        get_collection(client, cfg.store),
        default_timeout=cfg.query.find_timeout_seconds,
    )
    return MessageService(gateway, cfg.query), client


def create_app(service: MessageService, *, client: MongoClient | None = None) -> FastAPI:
    """
    Build the FastAPI application around a service.

    Args:
        service: The query/delete service every endpoint delegates to.
        client: Optional MongoDB client to close on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            service.gateway.ensure_indexes()
        except StoreError as exc:
            logger.warning("Could not ensure indexes: %s", exc)
        yield
        if client is not None:
            client.close()

    app = FastAPI(title="Ledger Ingest", version=__version__, lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(app, service)
    register_web_routes(app)
    return app


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Run the application under uvicorn until interrupted."""
    import uvicorn

    from ledger_ingest.config import config

    service, client = build_service(config)
    app = create_app(service, client=client)

    host = host or config.server.host
    port = port or config.server.port
    logger.info("Serving on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)
