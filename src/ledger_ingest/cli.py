"""
Command-line interface for Ledger Ingest.

Provides one-shot commands around the ingestion pipeline and the store:
- subscribe: Run the ingestion subscriber until stopped
- publish: Publish the lines of a text file to the bus
- view: Print stored messages (all, or one ledger code)
- delete: Delete every message with a ledger code
- store: Store a message entered by hand
- serve: Start the HTTP API and web pages
- config: Print the effective configuration

Usage:
    ledger-ingest subscribe [--subject S] [--inactivity-timeout SECONDS]
    ledger-ingest publish [FILE] [--subject S] [--delay SECONDS]
    ledger-ingest view [--ledger-code N]
    ledger-ingest delete LEDGER_CODE
    ledger-ingest store LEDGER_CODE LEDGER_METER
    ledger-ingest serve [--host HOST] [--port PORT]

Exit status is 0 on success, 1 on an operational error (bus or store
unreachable, store failure) and 2 on invalid input.

Connection settings come from ``ledger_ingest.config`` (config/ledger.ini
and environment variables such as BUS_URL and MONGO_URI).
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from ledger_ingest.config import LoggingSettings

if TYPE_CHECKING:
    from ledger_ingest.services.messages import MessageService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2

_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Apply the configured level and format to the root logger."""
    if settings is None:
        from ledger_ingest.config import config

        settings = config.logging

    handler = logging.StreamHandler()
    if settings.format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FORMATS.get(settings.format, _FORMATS["detailed"])))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))


@contextmanager
def _service_scope() -> Iterator["MessageService"]:
    """Yield a MessageService bound to the configured store; close it after."""
    from ledger_ingest.api.server import build_service

    service, client = build_service()
    try:
        yield service
    finally:
        client.close()


def _print_record(record) -> None:
    received = record.received_at.isoformat() if record.received_at else "-"
    print("-" * 40)
    print(f"  ID:           {record.id}")
    print(f"  Ledger Code:  {record.ledger_code}")
    print(f"  Ledger Meter: {record.ledger_meter}")
    print(f"  Raw Message:  {record.raw_message}")
    print(f"  Received At:  {received}")


# =============================================================================
# COMMANDS
# =============================================================================


async def _subscribe(subject: str, inactivity_timeout: float) -> int:
    from ledger_ingest.config import config
    from ledger_ingest.core.policy import FilterPolicy
    from ledger_ingest.core.subscriber import IngestionSubscriber
    from ledger_ingest.core.transport import BusConnection
    from ledger_ingest.db.connection import client_scope, get_collection
    from ledger_ingest.db.errors import StoreError
    from ledger_ingest.db.messages_repo import MessageStoreGateway

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform; Ctrl+C cancels the task instead
            pass

    with client_scope(config.store, verify=True) as client:
        gateway = MessageStoreGateway(
            get_collection(client, config.store),
            default_timeout=config.ingest.insert_timeout_seconds,
        )
        try:
            gateway.ensure_indexes()
        except StoreError as exc:
            logger.warning("Could not ensure indexes: %s", exc)

        subscriber = IngestionSubscriber(
            gateway,
            policy=FilterPolicy.from_codes(config.ingest.blocked_ledger_codes),
            subject=subject,
            insert_timeout=config.ingest.insert_timeout_seconds,
        )
        connection = await BusConnection.connect(
            config.bus.url, timeout=config.bus.connect_timeout_seconds
        )
        async with connection:
            stats = await subscriber.listen(
                connection,
                stop_event=stop_event,
                inactivity_timeout=inactivity_timeout or None,
                poll_interval=config.ingest.poll_interval_seconds,
            )

    print(
        f"Received {stats.received}: stored {stats.stored}, filtered {stats.filtered}, "
        f"rejected {stats.rejected}, failed {stats.failed}"
    )
    return EXIT_OK


def cmd_subscribe(args: argparse.Namespace) -> int:
    """Run the ingestion subscriber until SIGINT/SIGTERM or inactivity."""
    from ledger_ingest.config import config
    from ledger_ingest.core.transport import BusError
    from ledger_ingest.db.errors import StoreError

    subject = args.subject or config.bus.subject
    inactivity = (
        args.inactivity_timeout
        if args.inactivity_timeout is not None
        else config.ingest.inactivity_timeout_seconds
    )
    try:
        return asyncio.run(_subscribe(subject, inactivity))
    except (BusError, StoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        return EXIT_OK


async def _publish(path: Path, subject: str, delay: float) -> int:
    from ledger_ingest.config import config
    from ledger_ingest.core.publisher import publish_file
    from ledger_ingest.core.transport import BusConnection

    connection = await BusConnection.connect(
        config.bus.url, timeout=config.bus.connect_timeout_seconds
    )
    async with connection:
        result = await publish_file(connection, subject, path, delay=delay)
    print(f"Published {result.published} message(s) to '{subject}'")
    return EXIT_OK if result.failed == 0 else EXIT_ERROR


def cmd_publish(args: argparse.Namespace) -> int:
    """Publish each non-empty line of FILE to the bus."""
    from ledger_ingest.config import config
    from ledger_ingest.core.transport import BusError

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: input file '{path}' not found", file=sys.stderr)
        return EXIT_INVALID

    subject = args.subject or config.bus.subject
    delay = args.delay if args.delay is not None else config.ingest.publish_delay_seconds
    try:
        return asyncio.run(_publish(path, subject, delay))
    except BusError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


def _run_service_command(action) -> int:
    """Run ``action(service)`` and map service errors to exit codes."""
    from ledger_ingest.services.errors import InvalidRequestError, ServiceError

    try:
        with _service_scope() as service:
            action(service)
    except InvalidRequestError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_INVALID
    except ServiceError as e:
        print(f"Error: {e.message} ({e.cause})", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK


def cmd_view(args: argparse.Namespace) -> int:
    """Print stored messages, newest first."""

    def action(service) -> None:
        records = service.find(args.ledger_code)
        if not records:
            print("No messages found.")
            return
        print(f"Found {len(records)} message(s):")
        for record in records:
            _print_record(record)
        print("-" * 40)

    return _run_service_command(action)


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete every message with LEDGER_CODE."""

    def action(service) -> None:
        deleted = service.delete(args.ledger_code)
        print(f"Deleted {deleted} message(s) with ledger_code {args.ledger_code}")

    return _run_service_command(action)


def cmd_store(args: argparse.Namespace) -> int:
    """Store a message built from LEDGER_CODE and LEDGER_METER."""

    def action(service) -> None:
        record = service.create(args.ledger_code, args.ledger_meter)
        print(f"Stored message {record.id}")
        _print_record(record)

    return _run_service_command(action)


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API and web pages."""
    from ledger_ingest.api.server import start_server

    try:
        start_server(host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    return EXIT_OK


def cmd_config(args: argparse.Namespace) -> int:
    from ledger_ingest.config import print_config_summary

    print_config_summary()
    return EXIT_OK


# =============================================================================
# ENTRY POINT
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-ingest",
        description="Ledger Ingest - bus-to-MongoDB ledger message pipeline",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # subscribe command
    subscribe_parser = subparsers.add_parser(
        "subscribe",
        help="Run the ingestion subscriber",
        description=(
            "Subscribe to the bus subject and store every accepted message. "
            "Stops on SIGINT/SIGTERM or after the inactivity timeout."
        ),
    )
    subscribe_parser.add_argument("--subject", help="Bus subject (default: from config)")
    subscribe_parser.add_argument(
        "--inactivity-timeout",
        type=float,
        metavar="SECONDS",
        help="Stop after this many idle seconds (0 = never)",
    )
    subscribe_parser.set_defaults(func=cmd_subscribe)

    # publish command
    publish_parser = subparsers.add_parser(
        "publish",
        help="Publish the lines of a file to the bus",
    )
    publish_parser.add_argument(
        "file", nargs="?", default="input.txt", help="Input file (default: input.txt)"
    )
    publish_parser.add_argument("--subject", help="Bus subject (default: from config)")
    publish_parser.add_argument(
        "--delay", type=float, metavar="SECONDS", help="Pause between messages"
    )
    publish_parser.set_defaults(func=cmd_publish)

    # view command
    view_parser = subparsers.add_parser("view", help="Print stored messages")
    view_parser.add_argument("--ledger-code", help="Only this ledger code")
    view_parser.set_defaults(func=cmd_view)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete messages by ledger code")
    delete_parser.add_argument("ledger_code", metavar="LEDGER_CODE")
    delete_parser.set_defaults(func=cmd_delete)

    # store command
    store_parser = subparsers.add_parser("store", help="Store a message by hand")
    store_parser.add_argument("ledger_code", metavar="LEDGER_CODE")
    store_parser.add_argument("ledger_meter", metavar="LEDGER_METER")
    store_parser.set_defaults(func=cmd_store)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API and web pages")
    serve_parser.add_argument("--host", type=str, help="Host to bind (default: from config)")
    serve_parser.add_argument("--port", "-p", type=int, help="Port (default: from config)")
    serve_parser.set_defaults(func=cmd_serve)

    # config command
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
