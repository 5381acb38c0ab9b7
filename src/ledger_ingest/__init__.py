"""Ledger Ingest: bus-to-document-store message ingestion.

Subscribes to a bus subject (Redis pub/sub), parses fixed-format ledger messages
(``MMMMCCC...``), drops blocked ledger codes, and persists the rest as
MongoDB documents. A small query/delete service, HTTP API, web forms and
CLI tools sit on top of the same store contract.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("ledger-ingest")
except PackageNotFoundError:
    __version__ = "0.1.0"
