"""
Ingestion subscriber.

Binds one bus subscription to the pipeline:

    payload -> parse -> filter policy -> stamp received_at -> gateway.insert

=============================================================================
LIFECYCLE
=============================================================================

    IDLE -> CONNECTED -> LISTENING -> (PROCESSING -> LISTENING)* -> CLOSED

- Payloads of one subscription are handled strictly one at a time, in
  delivery order. The next payload is not dequeued until the current one
  has been stored, dropped or has failed.
- The store call runs in a worker thread so the event loop stays free.
- Per-message failures never stop the loop: a rejected payload, a filtered
  record and a failed insert are each logged, recorded on the pipeline bus
  and counted, then the subscriber keeps listening.
- Failed inserts are dropped. There is no retry and no dead-letter queue.

=============================================================================
SHUTDOWN
=============================================================================

``run()`` returns when the stop event is set, when the optional inactivity
timeout elapses without a payload, or when the subscription is closed
elsewhere. Cancelling the task also stops it. In every case an insert that
is already in flight completes (or times out) first, the subscription is
released, and no further payloads are dequeued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Protocol

from ledger_ingest.core.bus import PipelineBus
from ledger_ingest.core.events import Events
from ledger_ingest.core.parser import Rejection, parse
from ledger_ingest.core.policy import FilterPolicy
from ledger_ingest.core.transport import BusConnection, BusError
from ledger_ingest.db.errors import StoreError
from ledger_ingest.db.messages_repo import MessageStoreGateway

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """What the subscriber needs from a subscription."""

    subject: str

    async def next_message(self, timeout: float) -> bytes | None: ...

    async def unsubscribe(self) -> None: ...


class SubscriberState(Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    LISTENING = "listening"
    PROCESSING = "processing"
    CLOSED = "closed"


class IngestOutcome(StrEnum):
    """What happened to one payload."""

    STORED = "stored"
    REJECTED = "rejected"
    FILTERED = "filtered"
    FAILED = "failed"


class StopReason(StrEnum):
    STOPPED = "stopped"
    INACTIVITY = "inactivity"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"
    ERROR = "error"


@dataclass
class IngestStats:
    """Per-subscriber counters. ``received`` equals the sum of the outcomes."""

    received: int = 0
    stored: int = 0
    rejected: int = 0
    filtered: int = 0
    failed: int = 0

    def record(self, outcome: IngestOutcome) -> None:
        self.received += 1
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class IngestionSubscriber:
    """
    Run the ingestion pipeline for one subscription.

    Args:
        gateway: Store gateway used for inserts.
        policy: Filter policy; defaults to blocking ledger code 123.
        subject: Subject to subscribe to (used by ``listen()`` and in logs).
        insert_timeout: Deadline in seconds for each insert.
        event_bus: Pipeline bus for outcome events; defaults to the process bus.
        clock: Returns the acceptance timestamp; defaults to ``datetime.now(UTC)``.
    """

    def __init__(
        self,
        gateway: MessageStoreGateway,
        *,
        policy: FilterPolicy | None = None,
        subject: str = "messages",
        insert_timeout: float = 5.0,
        event_bus: PipelineBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.policy = policy or FilterPolicy()
        self.subject = subject
        self.insert_timeout = insert_timeout
        self._bus = event_bus or PipelineBus()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state = SubscriberState.IDLE
        self.stats = IngestStats()

    @property
    def state(self) -> SubscriberState:
        return self._state

    def _emit(self, event_type: str, **detail) -> None:
        self._bus.emit(event_type, {"subject": self.subject, **detail}, source="subscriber")

    # =========================================================================
    # PER-MESSAGE PIPELINE
    # =========================================================================

    def process(self, data: bytes | str) -> IngestOutcome:
        """
        Run one payload through parse, filter and insert.

        Never raises for per-message problems; the outcome says what
        happened and the same fact is logged and emitted on the bus.
        """
        size = len(data.encode("utf-8") if isinstance(data, str) else data)
        self._emit(Events.MESSAGE_RECEIVED, size=size)

        result = parse(data)
        if isinstance(result, Rejection):
            logger.warning(
                "Rejected message on '%s': %s (%s)", self.subject, result.reason, result.detail
            )
            self._emit(Events.MESSAGE_REJECTED, reason=str(result.reason), detail=result.detail)
            return self._finish(IngestOutcome.REJECTED)

        if not self.policy.accept(result):
            logger.info(
                "Filtered message on '%s': ledger_code %s is blocked",
                self.subject,
                result.ledger_code,
            )
            self._emit(Events.MESSAGE_FILTERED, ledger_code=result.ledger_code)
            return self._finish(IngestOutcome.FILTERED)

        record = result.stamped(self._clock())
        try:
            stored = self.gateway.insert_record(record, timeout=self.insert_timeout)
        except StoreError as exc:
            logger.error(
                "Dropping message with ledger_code %s: %s", record.ledger_code, exc
            )
            self._emit(
                Events.MESSAGE_STORE_FAILED,
                ledger_code=record.ledger_code,
                error=type(exc).__name__,
                message=str(exc),
            )
            return self._finish(IngestOutcome.FAILED)

        logger.info("Stored message %s (ledger_code=%s)", stored.id, stored.ledger_code)
        self._emit(
            Events.MESSAGE_STORED,
            record_id=str(stored.id),
            ledger_code=stored.ledger_code,
            ledger_meter=stored.ledger_meter,
        )
        return self._finish(IngestOutcome.STORED)

    def _finish(self, outcome: IngestOutcome) -> IngestOutcome:
        self.stats.record(outcome)
        return outcome

    # =========================================================================
    # RECEIVE LOOP
    # =========================================================================

    async def _receive(
        self,
        subscription: MessageSource,
        stop_event: asyncio.Event | None,
        timeout: float,
    ) -> bytes | None:
        """
        Wait for the next payload, giving up as soon as ``stop_event`` is set.

        Returns ``None`` on timeout or stop; the pending receive is cancelled
        so nothing is dequeued after the stop signal.
        """
        if stop_event is None:
            return await subscription.next_message(timeout)

        receive = asyncio.ensure_future(subscription.next_message(timeout))
        stopped = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({receive, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (receive, stopped):
                if not task.done():
                    task.cancel()

        if receive.done() and not receive.cancelled():
            return receive.result()
        return None

    async def listen(self, connection: BusConnection, **kwargs) -> IngestStats:
        """Subscribe to ``self.subject`` on ``connection`` and ``run()`` it."""
        subscription = await connection.subscribe(self.subject)
        return await self.run(subscription, **kwargs)

    async def run(
        self,
        subscription: MessageSource,
        *,
        stop_event: asyncio.Event | None = None,
        inactivity_timeout: float | None = None,
        poll_interval: float = 0.5,
    ) -> IngestStats:
        """
        Receive and process payloads until stopped.

        Args:
            subscription: Source of payloads; released when the loop ends.
            stop_event: Set it to stop after the current payload.
            inactivity_timeout: Stop after this many idle seconds. ``None``
                or ``0`` means run until stopped.
            poll_interval: How often to check the stop conditions while idle.

        Returns:
            The subscriber's counters.
        """
        if self._state is not SubscriberState.IDLE:
            raise RuntimeError(f"Subscriber already used (state={self._state.value})")

        self._state = SubscriberState.CONNECTED
        self.subject = getattr(subscription, "subject", self.subject)
        loop = asyncio.get_running_loop()
        reason = StopReason.STOPPED

        self._emit(Events.SUBSCRIBER_STARTED)
        logger.info("Listening on '%s'", self.subject)
        self._state = SubscriberState.LISTENING
        last_activity = loop.time()

        try:
            while True:
                if stop_event is not None and stop_event.is_set():
                    reason = StopReason.STOPPED
                    break
                if getattr(subscription, "closed", False):
                    reason = StopReason.EXHAUSTED
                    break

                data = await self._receive(subscription, stop_event, poll_interval)
                if data is None:
                    idle = loop.time() - last_activity
                    if inactivity_timeout and idle >= inactivity_timeout:
                        logger.info(
                            "No messages on '%s' for %.1fs, stopping", self.subject, idle
                        )
                        reason = StopReason.INACTIVITY
                        break
                    continue

                self._state = SubscriberState.PROCESSING
                work = asyncio.ensure_future(asyncio.to_thread(self.process, data))
                try:
                    await asyncio.shield(work)
                except asyncio.CancelledError:
                    # Let the in-flight insert finish (or time out) before closing
                    await work
                    raise
                self._state = SubscriberState.LISTENING
                last_activity = loop.time()
        except asyncio.CancelledError:
            reason = StopReason.CANCELLED
            raise
        except BusError:
            reason = StopReason.ERROR
            raise
        finally:
            try:
                await subscription.unsubscribe()
            except BusError as exc:
                logger.warning("Unsubscribe from '%s' failed: %s", self.subject, exc)
            self._state = SubscriberState.CLOSED
            logger.info("Stopped listening on '%s' (%s): %s", self.subject, reason, self.stats)
            self._emit(Events.SUBSCRIBER_STOPPED, reason=str(reason), stats=self.stats.as_dict())

        return self.stats
