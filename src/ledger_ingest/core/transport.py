"""
Message bus transport (Redis pub/sub).

The ingestion subscriber and the publisher talk to the bus only through
``BusConnection`` and ``Subscription``. Delivery semantics are those of
Redis pub/sub: subjects are channels, the broker fans each published
payload out to the subscribers connected at that moment, and nothing is
replayed for a subscriber that was not listening. That is the at-most-once
contract the pipeline is built for.

Usage:
    async with await BusConnection.connect(config.bus.url) as connection:
        subscription = await connection.subscribe("messages")
        payload = await subscription.next_message(timeout=0.5)
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class BusError(RuntimeError):
    """Base exception for bus transport failures."""


class BusUnavailable(BusError):
    """The bus server could not be reached."""


class Subscription:
    """
    One subject subscription.

    Payloads come back as raw ``bytes`` in delivery order. After
    ``unsubscribe()`` no further payloads are returned.
    """

    def __init__(self, pubsub: PubSub, subject: str) -> None:
        self._pubsub = pubsub
        self.subject = subject
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def next_message(self, timeout: float) -> bytes | None:
        """
        Wait up to ``timeout`` seconds for the next payload.

        Returns:
            The payload, or ``None`` if nothing arrived in time.
        """
        if self._closed:
            return None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=remaining
                )
            except RedisError as exc:
                raise BusUnavailable(f"Receive on '{self.subject}' failed: {exc}") from exc
            # Subscribe/unsubscribe confirmations come back as None
            if message is None:
                continue
            if message.get("type") in ("message", "pmessage"):
                data = message["data"]
                return data if isinstance(data, bytes) else str(data).encode("utf-8")

    async def unsubscribe(self) -> None:
        """Stop receiving and release the pub/sub connection."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self.subject)
        except RedisError as exc:
            raise BusUnavailable(f"Unsubscribe from '{self.subject}' failed: {exc}") from exc
        finally:
            await self._pubsub.aclose()


class BusConnection:
    """
    A connection to the message bus.

    Args:
        client: A ``redis.asyncio.Redis`` client (or a compatible fake).
        url: Where the client points, for logging only.
    """

    def __init__(self, client: aioredis.Redis, url: str = "") -> None:
        self._client = client
        self.url = url

    @classmethod
    async def connect(cls, url: str, *, timeout: float = 5.0) -> BusConnection:
        """
        Open a connection and verify the server answers.

        Raises:
            BusUnavailable: The server did not answer within ``timeout``.
        """
        client = aioredis.from_url(
            url,
            socket_connect_timeout=timeout,
            health_check_interval=30,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout=timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await client.aclose()
            raise BusUnavailable(f"Cannot reach bus at {url}: {exc}") from exc
        logger.info("Connected to bus at %s", url)
        return cls(client, url)

    async def subscribe(self, subject: str) -> Subscription:
        """Subscribe to a subject and return the subscription."""
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(subject)
        except RedisError as exc:
            await pubsub.aclose()
            raise BusUnavailable(f"Subscribe to '{subject}' failed: {exc}") from exc
        logger.debug("Subscribed to '%s'", subject)
        return Subscription(pubsub, subject)

    async def publish(self, subject: str, data: bytes | str) -> int:
        """
        Publish one payload.

        Returns:
            Number of subscribers the broker delivered it to.
        """
        try:
            return int(await self._client.publish(subject, data))
        except RedisError as exc:
            raise BusUnavailable(f"Publish to '{subject}' failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BusConnection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
