"""
Shared pytest fixtures for the Ledger Ingest test suite.

This module provides fixtures that are automatically available to all test files:
- A fresh pipeline bus for every test
- An in-memory MongoDB collection (mongomock) behind a real gateway
- Query/delete service and FastAPI TestClient instances
- A fake bus subscription driven from an asyncio.Queue

No test needs a running MongoDB or Redis server.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator, Iterable

import mongomock
import pytest
from fastapi.testclient import TestClient

from ledger_ingest.api.server import create_app
from ledger_ingest.config import QuerySettings
from ledger_ingest.core.bus import PipelineBus
from ledger_ingest.db.messages_repo import MessageStoreGateway
from ledger_ingest.services.messages import MessageService

# ============================================================================
# BUS FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_bus() -> Generator[None, None, None]:
    """
    Reset the pipeline bus singleton before and after each test.

    Keeps event logs and handlers from leaking between tests.
    """
    PipelineBus.reset_for_testing()
    yield
    PipelineBus.reset_for_testing()


@pytest.fixture
def event_bus() -> PipelineBus:
    """Provide the (freshly reset) pipeline bus."""
    return PipelineBus()


# ============================================================================
# STORE FIXTURES
# ============================================================================


@pytest.fixture
def mongo_collection():
    """
    Provide an empty in-memory ``messages`` collection.

    Yields:
        mongomock Collection standing in for ``messagedb.messages``
    """
    client = mongomock.MongoClient()
    collection = client["messagedb"]["messages"]
    yield collection
    client.close()


@pytest.fixture
def gateway(mongo_collection) -> MessageStoreGateway:
    """Gateway over the in-memory collection."""
    return MessageStoreGateway(mongo_collection, default_timeout=5.0)


@pytest.fixture
def service(gateway: MessageStoreGateway) -> MessageService:
    """Query/delete service over the in-memory gateway."""
    return MessageService(gateway, QuerySettings())


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture
def test_client(service: MessageService) -> TestClient:
    """
    FastAPI TestClient for the full application (API + web pages).

    The lifespan hook is not run, so no index creation happens.
    """
    return TestClient(create_app(service))


# ============================================================================
# SUBSCRIPTION FIXTURES
# ============================================================================


class FakeSubscription:
    """
    In-process stand-in for a bus subscription.

    Payloads put on ``queue`` are returned by ``next_message`` in order.
    With ``close_when_drained`` the subscription reports itself closed once
    the queue is empty, like a subscription the server has dropped.
    """

    def __init__(
        self,
        payloads: Iterable[bytes] = (),
        *,
        subject: str = "messages",
        close_when_drained: bool = False,
    ) -> None:
        self.subject = subject
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()
        for payload in payloads:
            self.queue.put_nowait(payload)
        self.close_when_drained = close_when_drained
        self.closed = False
        self.unsubscribe_calls = 0

    async def next_message(self, timeout: float) -> bytes | None:
        if self.closed:
            return None
        if self.close_when_drained and self.queue.empty():
            self.closed = True
            return None
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    async def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        self.closed = True


@pytest.fixture
def make_subscription():
    """Factory fixture building ``FakeSubscription`` instances."""
    return FakeSubscription
