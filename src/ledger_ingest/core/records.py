"""
Ledger message record.

A ``MessageRecord`` is the unit that flows through the ingestion pipeline
and the unit the store persists. Records are frozen: the parser creates them
with only the extracted fields, and later stages derive new records with
``stamped()`` / ``with_id()`` instead of mutating them. This keeps
``raw_message`` exactly as it arrived from the bus.

Lifecycle of the optional fields:

    parse()            -> id=None, received_at=None
    subscriber accept  -> received_at set (acceptance time, UTC)
    gateway insert     -> id set (generated ObjectId)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """
    One ledger message, parsed or persisted.

    Attributes:
        ledger_code: Integer ledger code. The only lookup/delete key, and
                     not unique across the collection.
        ledger_meter: Meter tag taken verbatim from the first four bytes.
        raw_message: The full original message text.
        id: Opaque unique identifier (ObjectId) once persisted.
        received_at: When the pipeline accepted the message (UTC).
    """

    ledger_code: int
    ledger_meter: str
    raw_message: str
    id: Any = None
    received_at: datetime | None = None

    def stamped(self, received_at: datetime | None = None) -> MessageRecord:
        """Return a copy carrying the acceptance timestamp (defaults to now, UTC)."""
        return replace(self, received_at=received_at or datetime.now(UTC))

    def with_id(self, record_id: Any) -> MessageRecord:
        """Return a copy carrying a store identifier."""
        if self.id is not None and self.id != record_id:
            raise ValueError(f"Record already has id {self.id!r}")
        return replace(self, id=record_id)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None
