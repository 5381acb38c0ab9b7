"""Tests for ``ledger_ingest.db.connection``."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from ledger_ingest.config import StoreSettings
from ledger_ingest.db import connection as db_connection
from ledger_ingest.db.errors import StoreUnavailable


@pytest.fixture
def settings() -> StoreSettings:
    return StoreSettings(
        uri="mongodb://db.example:27017",
        database="ledgers",
        collection="incoming",
        connect_timeout_seconds=2.5,
    )


@pytest.mark.unit
def test_create_client_passes_timeouts(settings):
    with patch.object(db_connection, "MongoClient") as client_cls:
        db_connection.create_client(settings)

    client_cls.assert_called_once_with(
        "mongodb://db.example:27017",
        connectTimeoutMS=2500,
        serverSelectionTimeoutMS=2500,
        tz_aware=True,
    )


@pytest.mark.unit
def test_get_collection_uses_settings(settings):
    client = MagicMock()

    db_connection.get_collection(client, settings)

    client.__getitem__.assert_called_once_with("ledgers")
    client.__getitem__.return_value.__getitem__.assert_called_once_with("incoming")


@pytest.mark.unit
def test_ping_failure_raises_store_unavailable():
    client = MagicMock()
    client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

    with pytest.raises(StoreUnavailable) as info:
        db_connection.ping(client)

    assert info.value.context.operation == "store.ping"


@pytest.mark.unit
def test_client_scope_closes_client(settings):
    client = MagicMock()
    with patch.object(db_connection, "create_client", return_value=client):
        with db_connection.client_scope(settings) as scoped:
            assert scoped is client
            client.admin.command.assert_called_once_with("ping")

    client.close.assert_called_once()


@pytest.mark.unit
def test_client_scope_closes_client_when_ping_fails(settings):
    client = MagicMock()
    client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
    with patch.object(db_connection, "create_client", return_value=client):
        with pytest.raises(StoreUnavailable):
            with db_connection.client_scope(settings):
                pass

    client.close.assert_called_once()


@pytest.mark.unit
def test_client_scope_without_verify(settings):
    client = MagicMock()
    with patch.object(db_connection, "create_client", return_value=client):
        with db_connection.client_scope(settings, verify=False):
            pass

    client.admin.command.assert_not_called()
    client.close.assert_called_once()
