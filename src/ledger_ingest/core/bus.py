"""
Pipeline Event Bus

An in-process, append-only record of what the ingestion pipeline did with
each message. The subscriber emits one fact per decision (received, rejected,
filtered, stored, store failed); tests and diagnostics read the log or
subscribe to it.

=============================================================================
PRINCIPLES
=============================================================================

1. THE BUS RECORDS FACTS
   - "message:stored" means the insert succeeded, not "please store this"
   - The bus never influences a pipeline decision

2. EVENTS ARE IMMUTABLE
   - Once emitted, an event cannot be changed

3. EMIT IS SYNCHRONOUS
   - Sequence numbers are assigned under a lock and enforce global order
   - Subscribers process messages in worker threads, so emit must be
     thread-safe

4. HANDLER ERRORS ARE CONTAINED
   - A failing handler is logged and never breaks ingestion

=============================================================================
USAGE
=============================================================================

    from ledger_ingest.core.bus import bus
    from ledger_ingest.core.events import Events

    unsubscribe = bus.on(Events.MESSAGE_REJECTED, lambda e: print(e.detail))
    ...
    unsubscribe()

    recent = bus.get_event_log(limit=10)

=============================================================================
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# A handler takes an event and returns nothing
EventHandler = Callable[["PipelineEvent"], None]

# An unsubscribe function takes no args and returns nothing
Unsubscribe = Callable[[], None]

# Bounded so a long-running subscriber cannot grow memory without limit
EVENT_LOG_SIZE = 10000


# =============================================================================
# EVENT METADATA
# =============================================================================


@dataclass(frozen=True)
class EventMetadata:
    """
    Metadata attached to every event.

    Attributes:
        timestamp: Unix epoch milliseconds (UTC). For display, NOT ordering.
        source: Component that emitted the event (e.g. "subscriber").
        sequence: Monotonically increasing integer. The only reliable order.
    """

    timestamp: int
    source: str
    sequence: int

    @staticmethod
    def create(source: str, sequence: int) -> EventMetadata:
        """Create metadata stamped with the current UTC time."""
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return EventMetadata(timestamp=now_ms, source=source, sequence=sequence)


# =============================================================================
# PIPELINE EVENT
# =============================================================================


@dataclass(frozen=True)
class PipelineEvent:
    """
    A single fact on the bus.

    Attributes:
        type: Event type string, "domain:action" (see ``core.events.Events``).
        detail: Event payload. Treat as read-only.
        _meta: Timestamp, source and sequence number.
    """

    type: str
    detail: dict = field(default_factory=dict)
    _meta: EventMetadata | None = field(default=None)

    def __str__(self) -> str:
        if self._meta:
            return (
                f"PipelineEvent(type='{self.type}', "
                f"source='{self._meta.source}', "
                f"seq={self._meta.sequence})"
            )
        return f"PipelineEvent(type='{self.type}')"

    @property
    def meta(self) -> EventMetadata | None:
        return self._meta


# =============================================================================
# PIPELINE BUS (SINGLETON)
# =============================================================================


class PipelineBus:
    """
    The process-wide pipeline event log - Singleton Pattern.

    All subscribers in a process share one bus so their facts interleave in
    a single sequence. Use ``reset_for_testing()`` between tests.

    Key Methods:
    - emit(): Record an event and notify handlers
    - on(): Subscribe to an event type (returns unsubscribe function)
    - get_event_log(): Retrieve recorded events, oldest first
    """

    _instance: PipelineBus | None = None
    _initialized: bool = False

    def __new__(cls) -> PipelineBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if PipelineBus._initialized:
            return

        # Maps event_type -> handlers in registration order
        self._handlers: dict[str, list[EventHandler]] = {}
        self._event_log: deque[PipelineEvent] = deque(maxlen=EVENT_LOG_SIZE)
        self._sequence: int = 0
        self._lock = threading.Lock()

        PipelineBus._initialized = True
        logger.debug("Pipeline bus initialized")

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "subscriber"
    ) -> PipelineEvent:
        """
        Record an event and notify its handlers.

        Sequence assignment and the log append happen under one lock, so the
        log order always matches sequence order. Handlers run after the lock
        is released, in the emitting thread.

        Args:
            event_type: "domain:action" event type.
            detail: Event payload. Defaults to an empty dict.
            source: Emitting component, for debugging.

        Returns:
            The committed event.
        """
        with self._lock:
            self._sequence += 1
            event = PipelineEvent(
                type=event_type,
                detail=detail if detail is not None else {},
                _meta=EventMetadata.create(source, self._sequence),
            )
            self._event_log.append(event)
            handlers = list(self._handlers.get(event_type, ()))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler error for '{event.type}': {e}", exc_info=True)

        return event

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to listen for.
            handler: Called with each matching event.

        Returns:
            A function that removes this handler.
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._handlers.get(event_type, []).remove(handler)
                except ValueError:
                    # Already removed
                    pass

        return unsubscribe

    # =========================================================================
    # EVENT LOG ACCESS
    # =========================================================================

    def get_event_log(
        self, limit: int | None = None, event_type: str | None = None
    ) -> list[PipelineEvent]:
        """
        Get recorded events, oldest first.

        Args:
            limit: Return only the last N matching events.
            event_type: Only return events of this type.
        """
        with self._lock:
            events = list(self._event_log)
        if event_type is not None:
            events = [event for event in events if event.type == event_type]
        if limit is not None:
            return events[-limit:]
        return events

    def get_sequence(self) -> int:
        """Return the last assigned sequence number."""
        return self._sequence

    def get_handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    # =========================================================================
    # TESTING SUPPORT
    # =========================================================================

    @classmethod
    def reset_for_testing(cls) -> None:
        """
        Reset the singleton for testing.

        *** NOT FOR PRODUCTION USE ***
        """
        cls._instance = None
        cls._initialized = False

    def clear_event_log(self) -> None:
        with self._lock:
            self._event_log.clear()


# This is THE bus. Import this, not the class.
bus = PipelineBus()
