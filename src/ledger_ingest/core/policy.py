"""Ledger code filter policy for the ingestion path."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ledger_ingest.core.records import MessageRecord

DEFAULT_BLOCKED_LEDGER_CODES: frozenset[int] = frozenset({123})


@dataclass(frozen=True, slots=True)
class FilterPolicy:
    """
    Decide whether a parsed record may be persisted.

    A record is dropped iff its ledger code is blocked. Dropping is a policy
    outcome, not an error. Only the ingestion subscriber consults this; the
    manual store path does not.
    """

    blocked_ledger_codes: frozenset[int] = DEFAULT_BLOCKED_LEDGER_CODES

    @classmethod
    def from_codes(cls, codes: Iterable[int]) -> FilterPolicy:
        return cls(blocked_ledger_codes=frozenset(int(code) for code in codes))

    def accept(self, record: MessageRecord) -> bool:
        return record.ledger_code not in self.blocked_ledger_codes


def accept(record: MessageRecord) -> bool:
    """Apply the default policy (ledger code 123 is blocked)."""
    return FilterPolicy().accept(record)
