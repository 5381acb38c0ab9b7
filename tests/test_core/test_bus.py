"""
Tests for the Pipeline Event Bus

These tests verify the core constraints:

1. Events are immutable after creation
2. Emit is synchronous (event committed before return)
3. Event ordering is deterministic (sequence numbers), also across threads
4. Handlers are called in registration order
5. A failing handler never breaks emit
6. The bus is a singleton
"""

import threading

import pytest

from ledger_ingest.core.bus import EventMetadata, PipelineBus, PipelineEvent
from ledger_ingest.core.events import Events, get_all_event_types, is_valid_event_type

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def test_bus():
    """
    Provide a fresh bus instance for testing.

    The autouse reset in conftest makes this a new bus for every test.
    """
    return PipelineBus()


# =============================================================================
# EVENT METADATA TESTS
# =============================================================================


class TestEventMetadata:
    """Tests for EventMetadata class."""

    @pytest.mark.unit
    def test_create_metadata(self):
        """EventMetadata.create() should populate all fields."""
        meta = EventMetadata.create(source="test", sequence=42)

        assert meta.source == "test"
        assert meta.sequence == 42
        assert meta.timestamp > 0

    @pytest.mark.unit
    def test_metadata_is_immutable(self):
        meta = EventMetadata.create(source="test", sequence=1)

        with pytest.raises(AttributeError):
            meta.sequence = 999  # type: ignore


# =============================================================================
# PIPELINE EVENT TESTS
# =============================================================================


class TestPipelineEvent:
    """Tests for PipelineEvent class."""

    @pytest.mark.unit
    def test_event_is_immutable(self):
        event = PipelineEvent(type=Events.MESSAGE_STORED, detail={"ledger_code": 45})

        with pytest.raises(AttributeError):
            event.type = "changed"  # type: ignore

    @pytest.mark.unit
    def test_event_str_representation(self, test_bus):
        event = test_bus.emit(Events.MESSAGE_RECEIVED, {"size": 11})

        assert str(event) == "PipelineEvent(type='message:received', source='subscriber', seq=1)"
        assert str(PipelineEvent(type="x:y")) == "PipelineEvent(type='x:y')"

    @pytest.mark.unit
    def test_event_default_detail(self):
        assert PipelineEvent(type="x:y").detail == {}


# =============================================================================
# SINGLETON TESTS
# =============================================================================


class TestBusSingleton:
    """Tests for the singleton pattern."""

    @pytest.mark.unit
    def test_singleton_returns_same_instance(self):
        assert PipelineBus() is PipelineBus()

    @pytest.mark.unit
    def test_reset_for_testing_creates_new_instance(self):
        first = PipelineBus()
        first.emit(Events.MESSAGE_RECEIVED)

        PipelineBus.reset_for_testing()
        second = PipelineBus()

        assert second is not first
        assert second.get_event_log() == []
        assert second.get_sequence() == 0


# =============================================================================
# EMIT TESTS
# =============================================================================


class TestEmit:
    """Tests for emit()."""

    @pytest.mark.unit
    def test_emit_returns_committed_event(self, test_bus):
        event = test_bus.emit(Events.MESSAGE_FILTERED, {"ledger_code": 123})

        assert event.type == Events.MESSAGE_FILTERED
        assert event.detail == {"ledger_code": 123}
        assert test_bus.get_event_log() == [event]

    @pytest.mark.unit
    def test_emit_assigns_sequence_numbers(self, test_bus):
        first = test_bus.emit(Events.MESSAGE_RECEIVED)
        second = test_bus.emit(Events.MESSAGE_STORED)

        assert first.meta.sequence == 1
        assert second.meta.sequence == 2
        assert test_bus.get_sequence() == 2

    @pytest.mark.unit
    def test_emit_default_source(self, test_bus):
        assert test_bus.emit(Events.MESSAGE_RECEIVED).meta.source == "subscriber"
        assert test_bus.emit(Events.MESSAGE_RECEIVED, source="cli").meta.source == "cli"

    @pytest.mark.unit
    def test_emit_with_none_detail(self, test_bus):
        assert test_bus.emit(Events.MESSAGE_RECEIVED, None).detail == {}

    @pytest.mark.unit
    def test_concurrent_emit_keeps_log_in_sequence_order(self, test_bus):
        def worker():
            for _ in range(200):
                test_bus.emit(Events.MESSAGE_RECEIVED)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        sequences = [event.meta.sequence for event in test_bus.get_event_log()]
        assert sequences == list(range(1, 801))


# =============================================================================
# SUBSCRIBE TESTS
# =============================================================================


class TestSubscribe:
    """Tests for on() and handler dispatch."""

    @pytest.mark.unit
    def test_on_only_receives_matching_events(self, test_bus):
        received = []
        test_bus.on(Events.MESSAGE_STORED, received.append)

        test_bus.emit(Events.MESSAGE_RECEIVED)
        stored = test_bus.emit(Events.MESSAGE_STORED)

        assert received == [stored]

    @pytest.mark.unit
    def test_unsubscribe(self, test_bus):
        received = []
        unsubscribe = test_bus.on(Events.MESSAGE_STORED, received.append)

        unsubscribe()
        unsubscribe()  # second call is a no-op
        test_bus.emit(Events.MESSAGE_STORED)

        assert received == []
        assert test_bus.get_handler_count(Events.MESSAGE_STORED) == 0

    @pytest.mark.unit
    def test_handlers_called_in_registration_order(self, test_bus):
        calls = []
        test_bus.on(Events.MESSAGE_STORED, lambda e: calls.append("first"))
        test_bus.on(Events.MESSAGE_STORED, lambda e: calls.append("second"))

        test_bus.emit(Events.MESSAGE_STORED)

        assert calls == ["first", "second"]

    @pytest.mark.unit
    def test_handler_error_does_not_affect_other_handlers(self, test_bus):
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        test_bus.on(Events.MESSAGE_STORED, broken)
        test_bus.on(Events.MESSAGE_STORED, lambda e: calls.append(e.type))

        event = test_bus.emit(Events.MESSAGE_STORED)

        assert calls == [Events.MESSAGE_STORED]
        assert test_bus.get_event_log() == [event]


# =============================================================================
# EVENT LOG TESTS
# =============================================================================


class TestEventLog:
    """Tests for get_event_log() filtering."""

    @pytest.mark.unit
    def test_filter_by_type_and_limit(self, test_bus):
        for code in (1, 2, 3):
            test_bus.emit(Events.MESSAGE_STORED, {"ledger_code": code})
            test_bus.emit(Events.MESSAGE_RECEIVED)

        stored = test_bus.get_event_log(event_type=Events.MESSAGE_STORED)
        last_two = test_bus.get_event_log(limit=2, event_type=Events.MESSAGE_STORED)

        assert [e.detail["ledger_code"] for e in stored] == [1, 2, 3]
        assert [e.detail["ledger_code"] for e in last_two] == [2, 3]

    @pytest.mark.unit
    def test_clear_event_log(self, test_bus):
        test_bus.emit(Events.MESSAGE_RECEIVED)

        test_bus.clear_event_log()

        assert test_bus.get_event_log() == []


# =============================================================================
# EVENT CONSTANTS TESTS
# =============================================================================


@pytest.mark.unit
def test_event_types_are_domain_action_strings():
    types = get_all_event_types()

    assert Events.MESSAGE_STORED in types
    assert Events.SUBSCRIBER_STOPPED in types
    assert all(":" in event_type for event_type in types)


@pytest.mark.unit
def test_is_valid_event_type():
    assert is_valid_event_type("message:rejected")
    assert not is_valid_event_type("message:reject")
