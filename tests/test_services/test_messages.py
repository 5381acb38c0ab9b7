"""
Tests for the query/delete service.

Covers:
- Ledger code validation (never reaching the store on bad input)
- find/delete/create against the in-memory collection
- Translation of store errors into caller-facing errors
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ledger_ingest.config import QuerySettings
from ledger_ingest.db.errors import (
    OperationTimeout,
    StoreOperationContext,
    StoreReadError,
    StoreUnavailable,
    StoreWriteError,
    WriteRejected,
)
from ledger_ingest.services.errors import (
    InvalidRequestError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    StorageFailureError,
)
from ledger_ingest.services.messages import MessageService, parse_ledger_code

# ============================================================================
# VALIDATION
# ============================================================================


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [(45, 45), ("45", 45), ("045", 45), ("+7", 7), ("-3", -3), (" 12 ", 12), (0, 0)],
)
def test_parse_ledger_code_accepts_integers(value, expected):
    assert parse_ledger_code(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "value",
    [None, "", "   ", "abc", "12a", "1.5", "4 5", "--1", "١٢", True, 4.5, 2**63],
)
def test_parse_ledger_code_rejects_malformed(value):
    with pytest.raises(InvalidRequestError) as info:
        parse_ledger_code(value)

    assert info.value.status_code == 400


@pytest.mark.unit
def test_invalid_input_never_reaches_the_store():
    gateway = MagicMock()
    service = MessageService(gateway)

    with pytest.raises(InvalidRequestError):
        service.find("abc")
    with pytest.raises(InvalidRequestError):
        service.delete("")
    with pytest.raises(InvalidRequestError):
        service.create("x", "WXYZ")
    with pytest.raises(InvalidRequestError):
        service.create("45", "  ")

    assert gateway.mock_calls == []


# ============================================================================
# OPERATIONS
# ============================================================================


@pytest.mark.db
def test_create_synthesises_raw_message(service):
    record = service.create("45", "WXYZ")

    assert record.raw_message == "WXYZ45"
    assert record.ledger_meter == "WXYZ"
    assert record.id is not None
    assert record.received_at is not None


@pytest.mark.db
def test_create_keeps_meter_verbatim(service):
    record = service.create("45", " WX ")

    assert record.ledger_meter == " WX "
    assert record.raw_message == " WX 45"
    assert service.find(45) == [record]


@pytest.mark.db
def test_create_ignores_filter_policy(service):
    record = service.create(123, "ABCD")

    assert service.find(123) == [record]


@pytest.mark.db
def test_find_by_code_and_all(service):
    first = service.create(45, "AAAA")
    second = service.create(46, "BBBB")

    assert service.find("45") == [first]
    assert {r.id for r in service.find(None)} == {first.id, second.id}
    assert service.find(999) == []


@pytest.mark.db
def test_delete_is_idempotent(service):
    service.create(45, "AAAA")
    service.create(45, "BBBB")

    assert service.delete("45") == 2
    assert service.delete("45") == 0
    assert service.find(45) == []


@pytest.mark.unit
def test_operation_timeouts_come_from_settings():
    gateway = MagicMock()
    gateway.find_by_ledger_code.return_value = []
    gateway.delete_by_ledger_code.return_value = 0
    settings = QuerySettings(
        find_timeout_seconds=1.0, delete_timeout_seconds=2.0, create_timeout_seconds=3.0
    )
    service = MessageService(gateway, settings)

    service.find(45)
    service.delete(45)
    service.create(45, "WXYZ")

    gateway.find_by_ledger_code.assert_called_once_with(45, timeout=1.0)
    gateway.delete_by_ledger_code.assert_called_once_with(45, timeout=2.0)
    assert gateway.insert_record.call_args.kwargs == {"timeout": 3.0}


@pytest.mark.unit
def test_default_timeouts():
    settings = QuerySettings()

    assert settings.find_timeout_seconds == 10.0
    assert settings.delete_timeout_seconds == 15.0
    assert settings.create_timeout_seconds == 5.0


# ============================================================================
# ERROR TRANSLATION
# ============================================================================


def _store_error(cls):
    return cls(context=StoreOperationContext("messages.test"), cause=RuntimeError("driver"))


@pytest.mark.unit
@pytest.mark.parametrize(
    ("store_error", "expected", "status"),
    [
        (StoreUnavailable, ServiceUnavailableError, 503),
        (OperationTimeout, ServiceTimeoutError, 504),
        (StoreReadError, StorageFailureError, 500),
        (StoreWriteError, StorageFailureError, 500),
        (WriteRejected, StorageFailureError, 500),
    ],
)
def test_store_errors_are_translated(store_error, expected, status):
    error = _store_error(store_error)
    gateway = MagicMock()
    gateway.find_by_ledger_code.side_effect = error
    gateway.delete_by_ledger_code.side_effect = error
    gateway.insert_record.side_effect = error
    service = MessageService(gateway)

    for call in (lambda: service.find(45), lambda: service.delete(45), lambda: service.create(45, "W")):
        with pytest.raises(expected) as info:
            call()
        assert info.value.status_code == status
        assert info.value.cause is error
        assert info.value.__cause__ is error
