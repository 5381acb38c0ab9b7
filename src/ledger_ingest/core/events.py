"""
Event Type Constants for the ingestion pipeline

Every outcome the subscriber reaches is recorded on the pipeline bus under
one of these types. Using constants instead of string literals keeps emitters
and listeners (tests, diagnostics) in agreement.

=============================================================================
NAMING CONVENTION
=============================================================================

Events use "domain:action" format in PAST TENSE:

    Good: "message:stored", "subscriber:started"
    Bad:  "store_message", "message:store"

The past tense emphasizes that events record FACTS about what HAPPENED,
not requests for something to happen.

=============================================================================
USAGE
=============================================================================

    from ledger_ingest.core.bus import bus
    from ledger_ingest.core.events import Events

    bus.on(Events.MESSAGE_STORED, lambda e: print(e.detail["record_id"]))

=============================================================================
"""


class Events:
    """
    All standard event types emitted by the ingestion pipeline.

    Organized by domain for easy navigation.
    """

    # =========================================================================
    # SUBSCRIBER LIFECYCLE
    # =========================================================================

    SUBSCRIBER_STARTED = "subscriber:started"
    """
    Emitted when a subscriber begins listening.

    Detail: {"subject": str}
    """

    SUBSCRIBER_STOPPED = "subscriber:stopped"
    """
    Emitted after a subscriber has closed its subscription.

    Detail: {
        "subject": str,
        "reason": str,  # "stopped", "inactivity", "cancelled", "exhausted", "error"
        "stats": dict   # IngestStats as a dict
    }
    """

    # =========================================================================
    # MESSAGE OUTCOMES
    # =========================================================================
    # Exactly one outcome event follows each MESSAGE_RECEIVED.

    MESSAGE_RECEIVED = "message:received"
    """
    Emitted when a payload is dequeued, before parsing.

    Detail: {"subject": str, "size": int}
    """

    MESSAGE_REJECTED = "message:rejected"
    """
    Emitted when the parser rejects a payload.

    Detail: {
        "subject": str,
        "reason": str,  # RejectionReason value, e.g. "too_short"
        "detail": str
    }
    """

    MESSAGE_FILTERED = "message:filtered"
    """
    Emitted when the filter policy drops a parsed record.

    Detail: {"subject": str, "ledger_code": int}
    """

    MESSAGE_STORED = "message:stored"
    """
    Emitted after a record has been inserted.

    Detail: {
        "subject": str,
        "record_id": str,
        "ledger_code": int,
        "ledger_meter": str
    }
    """

    MESSAGE_STORE_FAILED = "message:store_failed"
    """
    Emitted when the insert failed. The message is dropped.

    Detail: {
        "subject": str,
        "ledger_code": int,
        "error": str,   # StoreError class name
        "message": str
    }
    """


def get_all_event_types() -> list[str]:
    """Return every standard event type string, sorted."""
    return sorted(
        value
        for name, value in vars(Events).items()
        if isinstance(value, str) and not name.startswith("_")
    )


def is_valid_event_type(event_type: str) -> bool:
    """Check if an event type is one of the predefined constants."""
    return event_type in get_all_event_types()
