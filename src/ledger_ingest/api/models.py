"""
Pydantic models for API responses.

Requests arrive as HTML form fields or query parameters and are validated
by the service layer, so only response shapes are modelled here. They
provide:
- The JSON rendering of a stored record (``_id`` becomes ``id``)
- Clear API documentation via FastAPI's automatic OpenAPI schema generation
"""

from datetime import datetime

from pydantic import BaseModel

from ledger_ingest.core.records import MessageRecord

# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class MessageResponse(BaseModel):
    """
    One stored message.

    Attributes:
        id: Record identifier as a 24-character hex string
        ledger_code: Integer ledger code (lookup/delete key)
        ledger_meter: Meter tag from the first four bytes of the message
        raw_message: The original message text
        received_at: When the pipeline accepted the message (UTC, ISO-8601)
    """

    id: str
    ledger_code: int
    ledger_meter: str
    raw_message: str
    received_at: datetime | None = None

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageResponse":
        return cls(
            id=str(record.id),
            ledger_code=record.ledger_code,
            ledger_meter=record.ledger_meter,
            raw_message=record.raw_message,
            received_at=record.received_at,
        )


class DeleteResponse(BaseModel):
    """
    Result of a delete-by-ledger-code request.

    Attributes:
        deleted_count: Number of records removed (0 is a valid answer)
        ledger_code: The ledger code that was deleted
    """

    deleted_count: int
    ledger_code: int


class HealthResponse(BaseModel):
    """Liveness answer with the package version."""

    status: str
    version: str
