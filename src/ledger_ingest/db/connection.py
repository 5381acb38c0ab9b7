"""MongoDB connection primitives for the store layer.

This module owns client creation and collection lookup so the messages
gateway can stay focused on queries and error mapping.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from ledger_ingest.config import StoreSettings
from ledger_ingest.db.errors import StoreOperationContext, StoreUnavailable

logger = logging.getLogger(__name__)


def _settings(settings: StoreSettings | None) -> StoreSettings:
    if settings is not None:
        return settings
    from ledger_ingest.config import config

    return config.store


def create_client(settings: StoreSettings | None = None) -> MongoClient:
    """Create a client with connect/selection timeouts taken from settings.

    ``MongoClient`` connects lazily, so this never blocks. Use ``ping`` (or
    ``client_scope(verify=True)``) to fail fast at start-up.
    """
    settings = _settings(settings)
    timeout_ms = int(settings.connect_timeout_seconds * 1000)
    return MongoClient(
        settings.uri,
        connectTimeoutMS=timeout_ms,
        serverSelectionTimeoutMS=timeout_ms,
        tz_aware=True,
    )


def get_collection(client: MongoClient, settings: StoreSettings | None = None) -> Collection:
    """Return the configured message collection."""
    settings = _settings(settings)
    return client[settings.database][settings.collection]


def ping(client: MongoClient) -> None:
    """Round-trip to the server, raising ``StoreUnavailable`` on failure."""
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        raise StoreUnavailable(
            context=StoreOperationContext(operation="store.ping"),
            cause=exc,
        ) from exc


@contextmanager
def client_scope(
    settings: StoreSettings | None = None, *, verify: bool = True
) -> Iterator[MongoClient]:
    """Yield a client and always close it afterwards.

    Args:
        settings: Store settings; defaults to the global config.
        verify: Ping the server before yielding.
    """
    client = create_client(settings)
    try:
        if verify:
            ping(client)
            logger.info("Connected to MongoDB at %s", _settings(settings).uri)
        yield client
    finally:
        client.close()
