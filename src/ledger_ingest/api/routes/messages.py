"""Message query, store and delete endpoints."""

from fastapi import APIRouter, Form, status

from ledger_ingest.api.models import DeleteResponse, MessageResponse
from ledger_ingest.api.routes.utils import http_error
from ledger_ingest.services.errors import ServiceError
from ledger_ingest.services.messages import MessageService, parse_ledger_code


def router(service: MessageService) -> APIRouter:
    """Build the messages router around a query/delete service."""
    api = APIRouter()

    # Handlers are plain ``def``: the service blocks on the store, so FastAPI
    # runs them in its worker threadpool.

    @api.get("/inquiry", response_model=list[MessageResponse])
    def inquiry(ledger_code: str | None = None):
        """Return every record with ``ledger_code``, newest first."""
        try:
            records = service.find(parse_ledger_code(ledger_code))
        except ServiceError as exc:
            raise http_error(exc) from exc
        return [MessageResponse.from_record(record) for record in records]

    @api.get("/messages", response_model=list[MessageResponse])
    def list_messages():
        """Return every stored record, newest first."""
        try:
            records = service.find(None)
        except ServiceError as exc:
            raise http_error(exc) from exc
        return [MessageResponse.from_record(record) for record in records]

    @api.post("/store", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
    def store(ledger_code: str = Form(""), ledger_meter: str = Form("")):
        """Store a record entered through the form."""
        try:
            record = service.create(ledger_code, ledger_meter)
        except ServiceError as exc:
            raise http_error(exc) from exc
        return MessageResponse.from_record(record)

    @api.post("/delete", response_model=DeleteResponse)
    def delete(ledger_code: str = Form("")):
        """Delete every record with ``ledger_code``."""
        try:
            code = parse_ledger_code(ledger_code)
            deleted = service.delete(code)
        except ServiceError as exc:
            raise http_error(exc) from exc
        return DeleteResponse(deleted_count=deleted, ledger_code=code)

    return api
