"""
Fixed-format message parser.

Bus payloads look like ``MMMMCCC...``:

    offset 0-3   meter tag     taken verbatim, never validated
    offset 4-6   ledger code   three ASCII digits, base 10
    offset 7-    anything      ignored, but kept in raw_message

Offsets are byte offsets. ``parse`` never raises for bad input; it returns a
``Rejection`` naming the reason so the caller can log it and move on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ledger_ingest.core.records import MessageRecord

MIN_MESSAGE_LENGTH = 7
METER_SLICE = slice(0, 4)
CODE_SLICE = slice(4, 7)


class RejectionReason(StrEnum):
    """Why a payload could not be turned into a record."""

    TOO_SHORT = "too_short"
    MALFORMED_LEDGER_CODE = "malformed_ledger_code"


@dataclass(frozen=True, slots=True)
class Rejection:
    """A parse failure. ``detail`` is a human-readable line for logs."""

    reason: RejectionReason
    detail: str


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def parse(raw: bytes | str) -> MessageRecord | Rejection:
    """
    Parse one bus payload into a ``MessageRecord``.

    Args:
        raw: The payload. ``str`` input is UTF-8 encoded first so offsets
             are always measured in bytes.

    Returns:
        A record with ``id`` and ``received_at`` unset, or a ``Rejection``.
    """
    data = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)

    if len(data) < MIN_MESSAGE_LENGTH:
        return Rejection(
            RejectionReason.TOO_SHORT,
            f"payload {_decode(data)!r} is {len(data)} bytes, need at least {MIN_MESSAGE_LENGTH}",
        )

    code_bytes = data[CODE_SLICE]
    # bytes.isdigit() only accepts ASCII 0-9, so signs and spaces are rejected.
    if not code_bytes.isdigit():
        return Rejection(
            RejectionReason.MALFORMED_LEDGER_CODE,
            f"ledger code {_decode(code_bytes)!r} is not a base-10 integer",
        )

    return MessageRecord(
        ledger_code=int(code_bytes),
        ledger_meter=_decode(data[METER_SLICE]),
        raw_message=_decode(data),
    )
