"""Development feed: publish the lines of a text file to the bus."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from ledger_ingest.core.transport import BusConnection, BusError

logger = logging.getLogger(__name__)

DEFAULT_INPUT_FILE = Path("input.txt")


@dataclass
class PublishResult:
    published: int = 0
    skipped: int = 0
    failed: int = 0


def iter_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, text)`` for each line, newline stripped."""
    with path.open(encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            yield number, line.rstrip("\r\n")


async def publish_lines(
    connection: BusConnection,
    subject: str,
    lines: Iterable[tuple[int, str]],
    *,
    delay: float = 0.0,
) -> PublishResult:
    """
    Publish each non-empty line as one payload.

    A failed publish is logged and counted; the remaining lines are still
    sent. ``delay`` seconds are slept after each published line.
    """
    result = PublishResult()
    for number, text in lines:
        if not text:
            result.skipped += 1
            continue
        try:
            await connection.publish(subject, text.encode("utf-8"))
        except BusError as exc:
            logger.error("Error publishing line %d %r: %s", number, text, exc)
            result.failed += 1
        else:
            logger.info("Published line %d to '%s': %s", number, subject, text)
            result.published += 1
        if delay > 0:
            await asyncio.sleep(delay)
    return result


async def publish_file(
    connection: BusConnection, subject: str, path: Path, *, delay: float = 0.0
) -> PublishResult:
    logger.info("Reading messages from '%s' and publishing to '%s'", path, subject)
    result = await publish_lines(connection, subject, iter_lines(path), delay=delay)
    logger.info(
        "Publisher finished: %d published, %d skipped, %d failed",
        result.published,
        result.skipped,
        result.failed,
    )
    return result
