"""Message document gateway for the MongoDB backend.

All persistence of ``MessageRecord`` values goes through
``MessageStoreGateway``. The gateway:

- assigns ids (generated ``ObjectId``) to records that do not have one;
- normalises ``received_at`` to UTC at millisecond precision, which is what
  BSON datetimes can hold, so a record reads back equal to what was written;
- runs every driver call under a client-side deadline (``pymongo.timeout``);
- maps driver failures to the typed errors in ``ledger_ingest.db.errors``.

Stored document shape (field names are a storage contract)::

    {
        "_id":          ObjectId,
        "ledger_code":  int,
        "ledger_meter": str,
        "raw_message":  str,
        "received_at":  datetime (UTC)
    }
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, NoReturn

import pymongo
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError, WriteError

from ledger_ingest.core.records import MessageRecord
from ledger_ingest.db.errors import (
    OperationTimeout,
    StoreError,
    StoreOperationContext,
    StoreReadError,
    StoreUnavailable,
    StoreWriteError,
    WriteRejected,
)

logger = logging.getLogger(__name__)

# Newest first; _id breaks ties between records stamped in the same millisecond.
NEWEST_FIRST = [("received_at", DESCENDING), ("_id", DESCENDING)]

DEFAULT_TIMEOUT_SECONDS = 10.0


def _raise_store_error(
    operation: str,
    exc: Exception,
    *,
    write: bool,
    rejectable: bool = False,
    details: str | None = None,
) -> NoReturn:
    """Raise the typed store error for a driver failure, chaining the cause."""
    if isinstance(exc, StoreError):
        raise exc

    context = StoreOperationContext(operation=operation, details=details)
    error_cls: type[StoreError]
    # Server selection failures carry timeout=True too, but mean "unreachable".
    if isinstance(exc, ServerSelectionTimeoutError):
        error_cls = StoreUnavailable
    elif getattr(exc, "timeout", False):
        error_cls = OperationTimeout
    elif isinstance(exc, ConnectionFailure):
        error_cls = StoreUnavailable
    elif rejectable and isinstance(exc, WriteError):
        error_cls = WriteRejected
    elif write:
        error_cls = StoreWriteError
    else:
        error_cls = StoreReadError
    raise error_cls(context=context, cause=exc) from exc


def to_storage_time(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime truncated to milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def to_document(record: MessageRecord) -> dict[str, Any]:
    """Build the stored document for a record that has an id and timestamp."""
    if record.received_at is None:
        raise ValueError("received_at must be set before a record is stored")
    return {
        "_id": record.id,
        "ledger_code": record.ledger_code,
        "ledger_meter": record.ledger_meter,
        "raw_message": record.raw_message,
        "received_at": to_storage_time(record.received_at),
    }


def from_document(document: dict[str, Any]) -> MessageRecord:
    """Rebuild a record from a stored document."""
    received_at = document.get("received_at")
    if isinstance(received_at, datetime):
        received_at = to_storage_time(received_at)
    return MessageRecord(
        ledger_code=int(document["ledger_code"]),
        ledger_meter=document.get("ledger_meter", ""),
        raw_message=document.get("raw_message", ""),
        id=document.get("_id"),
        received_at=received_at,
    )


class MessageStoreGateway:
    """
    Insert, find and delete message documents by ledger code.

    The gateway holds no per-call state, so one instance can be shared by
    the subscriber and by concurrent service callers; the driver handles its
    own connection pooling.

    Args:
        collection: The MongoDB collection holding message documents.
        default_timeout: Deadline in seconds used when a call passes none.
    """

    def __init__(
        self, collection: Collection, *, default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        self._collection = collection
        self.default_timeout = default_timeout

    @property
    def collection(self) -> Collection:
        return self._collection

    def _deadline(self, timeout: float | None) -> float:
        return self.default_timeout if timeout is None else timeout

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert_record(self, record: MessageRecord, *, timeout: float | None = None) -> MessageRecord:
        """
        Persist a record and return it exactly as stored.

        The returned record carries the assigned id and the normalised
        ``received_at``. A record without ``received_at`` is stamped now.

        Raises:
            StoreUnavailable: The store cannot be reached.
            OperationTimeout: The deadline expired.
            WriteRejected: The store refused the document.
        """
        if record.received_at is None:
            record = record.stamped()
        if not record.is_persisted:
            record = record.with_id(ObjectId())
        stored = record.stamped(to_storage_time(record.received_at))

        try:
            with pymongo.timeout(self._deadline(timeout)):
                result = self._collection.insert_one(to_document(stored))
        except Exception as exc:
            _raise_store_error(
                "messages.insert",
                exc,
                write=True,
                rejectable=True,
                details=f"ledger_code={record.ledger_code}",
            )

        logger.debug("Inserted message %s (ledger_code=%s)", result.inserted_id, stored.ledger_code)
        return stored

    def insert(self, record: MessageRecord, *, timeout: float | None = None) -> Any:
        """Persist a record and return its id."""
        return self.insert_record(record, timeout=timeout).id

    def delete_by_ledger_code(self, ledger_code: int, *, timeout: float | None = None) -> int:
        """
        Delete every document with this ledger code.

        Returns:
            Number of documents removed (0 when nothing matched, so a repeated
            call is a no-op).
        """
        try:
            with pymongo.timeout(self._deadline(timeout)):
                result = self._collection.delete_many({"ledger_code": ledger_code})
        except Exception as exc:
            _raise_store_error(
                "messages.delete_by_ledger_code",
                exc,
                write=True,
                details=f"ledger_code={ledger_code}",
            )
        return int(result.deleted_count)

    # =========================================================================
    # READS
    # =========================================================================

    def find_by_ledger_code(
        self, ledger_code: int | None = None, *, timeout: float | None = None
    ) -> list[MessageRecord]:
        """
        Return matching records, newest ``received_at`` first.

        Args:
            ledger_code: Code to match. ``None`` returns every record.
        """
        query: dict[str, Any] = {} if ledger_code is None else {"ledger_code": ledger_code}
        try:
            with pymongo.timeout(self._deadline(timeout)):
                documents = list(self._collection.find(query).sort(NEWEST_FIRST))
        except Exception as exc:
            _raise_store_error(
                "messages.find_by_ledger_code",
                exc,
                write=False,
                details=f"ledger_code={ledger_code}",
            )
        return [from_document(document) for document in documents]

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def ensure_indexes(self, *, timeout: float | None = None) -> None:
        """Create the lookup index used by find/delete (idempotent)."""
        try:
            with pymongo.timeout(self._deadline(timeout)):
                self._collection.create_index(
                    [("ledger_code", ASCENDING), ("received_at", DESCENDING)],
                    name="ledger_code_received_at",
                )
        except Exception as exc:
            _raise_store_error("messages.ensure_indexes", exc, write=True)

    def ping(self, *, timeout: float | None = None) -> None:
        """Round-trip to the server hosting the collection."""
        try:
            with pymongo.timeout(self._deadline(timeout)):
                self._collection.database.command("ping")
        except Exception as exc:
            _raise_store_error("messages.ping", exc, write=False)
