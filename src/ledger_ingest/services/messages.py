"""
Query/delete service for stored ledger messages.

This is the request-style facade shared by the HTTP API, the web pages and
the one-shot CLI commands. It owns three things the gateway does not:

- validating caller-supplied ledger codes before any store call;
- the per-operation deadlines (find 10 s, delete 15 s, create 5 s by
  default, see ``QuerySettings``);
- translating ``StoreError`` into caller-facing ``ServiceError`` types.

The service keeps no mutable state and is safe to call concurrently.
"""

from __future__ import annotations

import logging
import re

from ledger_ingest.config import QuerySettings
from ledger_ingest.core.records import MessageRecord
from ledger_ingest.db.errors import OperationTimeout, StoreError, StoreUnavailable
from ledger_ingest.db.messages_repo import MessageStoreGateway
from ledger_ingest.services.errors import (
    InvalidRequestError,
    ServiceError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    StorageFailureError,
)

logger = logging.getLogger(__name__)

_LEDGER_CODE_RE = re.compile(r"[+-]?[0-9]+")

# BSON integers are at most 64-bit
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def parse_ledger_code(value: int | str | None) -> int:
    """
    Validate a caller-supplied ledger code.

    Accepts an ``int`` or a decimal string with an optional sign. Surrounding
    whitespace is ignored.

    Raises:
        InvalidRequestError: Missing, not an integer, or out of range.
    """
    if value is None:
        raise InvalidRequestError("ledger_code is required")
    if isinstance(value, bool):
        raise InvalidRequestError("ledger_code must be an integer")
    if isinstance(value, int):
        code = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidRequestError("ledger_code is required")
        if not _LEDGER_CODE_RE.fullmatch(text):
            raise InvalidRequestError(f"Invalid ledger_code {value!r}: must be an integer")
        code = int(text)
    else:
        raise InvalidRequestError("ledger_code must be an integer")

    if not _INT64_MIN <= code <= _INT64_MAX:
        raise InvalidRequestError(f"ledger_code {code} is out of range")
    return code


def _translate(exc: StoreError, action: str) -> ServiceError:
    if isinstance(exc, StoreUnavailable):
        return ServiceUnavailableError(f"Store unavailable while trying to {action}", cause=exc)
    if isinstance(exc, OperationTimeout):
        return ServiceTimeoutError(f"Timed out while trying to {action}", cause=exc)
    return StorageFailureError(f"Failed to {action}", cause=exc)


class MessageService:
    """
    Find, delete and manually create message records.

    Args:
        gateway: The store gateway.
        settings: Per-operation deadlines; defaults to ``QuerySettings()``.
    """

    def __init__(self, gateway: MessageStoreGateway, settings: QuerySettings | None = None) -> None:
        self.gateway = gateway
        self.settings = settings or QuerySettings()

    def find(self, ledger_code: int | str | None = None) -> list[MessageRecord]:
        """Return records with this ledger code (all records for ``None``), newest first."""
        code = None if ledger_code is None else parse_ledger_code(ledger_code)
        try:
            records = self.gateway.find_by_ledger_code(
                code, timeout=self.settings.find_timeout_seconds
            )
        except StoreError as exc:
            logger.error("Find failed for ledger_code=%s: %s", code, exc)
            raise _translate(exc, "find messages") from exc
        logger.debug("Found %d message(s) for ledger_code=%s", len(records), code)
        return records

    def delete(self, ledger_code: int | str) -> int:
        """Delete every record with this ledger code and return how many went."""
        code = parse_ledger_code(ledger_code)
        try:
            deleted = self.gateway.delete_by_ledger_code(
                code, timeout=self.settings.delete_timeout_seconds
            )
        except StoreError as exc:
            logger.error("Delete failed for ledger_code=%s: %s", code, exc)
            raise _translate(exc, "delete messages") from exc
        logger.info("Deleted %d message(s) with ledger_code=%s", deleted, code)
        return deleted

    def create(self, ledger_code: int | str, ledger_meter: str) -> MessageRecord:
        """
        Store a record entered by hand.

        ``raw_message`` is synthesised as meter followed by code. The
        ingestion filter policy does not apply here.
        """
        code = parse_ledger_code(ledger_code)
        meter = ledger_meter or ""
        if not meter.strip():
            raise InvalidRequestError("ledger_meter is required")

        record = MessageRecord(
            ledger_code=code,
            ledger_meter=meter,
            raw_message=f"{meter}{code}",
        ).stamped()
        try:
            stored = self.gateway.insert_record(
                record, timeout=self.settings.create_timeout_seconds
            )
        except StoreError as exc:
            logger.error("Create failed for ledger_code=%s: %s", code, exc)
            raise _translate(exc, "store message") from exc
        logger.info("Created message %s (ledger_code=%s)", stored.id, code)
        return stored
