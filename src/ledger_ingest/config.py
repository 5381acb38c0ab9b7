"""
Application configuration management.

This module loads configuration from multiple sources with a clear priority
order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/ledger.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The AppConfig
dataclass provides typed access to all settings.

Usage:
    from ledger_ingest.config import config

    print(config.bus.url)
    print(config.store.collection)
    print(config.ingest.blocked_ledger_codes)

Environment Variable Mapping:
    BUS_URL / REDIS_URL        -> bus.url
    BUS_SUBJECT                -> bus.subject
    MONGO_URI                  -> store.uri
    MONGO_DATABASE / MONGO_DB  -> store.database
    MONGO_COLLECTION           -> store.collection
    WEB_HOST                   -> server.host
    WEB_PORT                   -> server.port
    LEDGER_BLOCKED_CODES       -> ingest.blocked_ledger_codes
    LEDGER_INACTIVITY_TIMEOUT  -> ingest.inactivity_timeout_seconds
    LEDGER_LOG_LEVEL           -> logging.level
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "ledger.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "ledger.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """HTTP server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8080


@dataclass
class BusSettings:
    """Message bus (Redis pub/sub) connection configuration."""

    url: str = "redis://localhost:6379/0"
    subject: str = "messages"
    connect_timeout_seconds: float = 5.0


@dataclass
class StoreSettings:
    """MongoDB connection configuration."""

    uri: str = "mongodb://localhost:27017"
    database: str = "messagedb"
    collection: str = "messages"
    connect_timeout_seconds: float = 10.0


@dataclass
class IngestSettings:
    """Ingestion pipeline configuration."""

    blocked_ledger_codes: list[int] = field(default_factory=lambda: [123])
    insert_timeout_seconds: float = 5.0
    inactivity_timeout_seconds: float = 0.0  # 0 = run until stopped
    poll_interval_seconds: float = 0.5
    publish_delay_seconds: float = 0.2


@dataclass
class QuerySettings:
    """Per-operation deadlines for the query/delete service."""

    find_timeout_seconds: float = 10.0
    delete_timeout_seconds: float = 15.0
    create_timeout_seconds: float = 5.0


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class AppConfig:
    """
    Complete application configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    bus: BusSettings = field(default_factory=BusSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    ingest: IngestSettings = field(default_factory=IngestSettings)
    query: QuerySettings = field(default_factory=QuerySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_int_list(value: str) -> list[int]:
    """Parse a comma-separated string of integers."""
    return [int(item) for item in _parse_list(value)]


def _load_from_ini(parser: configparser.ConfigParser, cfg: AppConfig) -> None:
    """Load configuration from parsed INI file into AppConfig."""
    # Server section
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    # Bus section
    if parser.has_section("bus"):
        if parser.has_option("bus", "url"):
            cfg.bus.url = parser.get("bus", "url")
        if parser.has_option("bus", "subject"):
            cfg.bus.subject = parser.get("bus", "subject")
        if parser.has_option("bus", "connect_timeout_seconds"):
            cfg.bus.connect_timeout_seconds = parser.getfloat("bus", "connect_timeout_seconds")

    # Store section
    if parser.has_section("store"):
        if parser.has_option("store", "uri"):
            cfg.store.uri = parser.get("store", "uri")
        if parser.has_option("store", "database"):
            cfg.store.database = parser.get("store", "database")
        if parser.has_option("store", "collection"):
            cfg.store.collection = parser.get("store", "collection")
        if parser.has_option("store", "connect_timeout_seconds"):
            cfg.store.connect_timeout_seconds = parser.getfloat(
                "store", "connect_timeout_seconds"
            )

    # Ingest section
    if parser.has_section("ingest"):
        if parser.has_option("ingest", "blocked_ledger_codes"):
            cfg.ingest.blocked_ledger_codes = _parse_int_list(
                parser.get("ingest", "blocked_ledger_codes")
            )
        if parser.has_option("ingest", "insert_timeout_seconds"):
            cfg.ingest.insert_timeout_seconds = parser.getfloat("ingest", "insert_timeout_seconds")
        if parser.has_option("ingest", "inactivity_timeout_seconds"):
            cfg.ingest.inactivity_timeout_seconds = parser.getfloat(
                "ingest", "inactivity_timeout_seconds"
            )
        if parser.has_option("ingest", "poll_interval_seconds"):
            cfg.ingest.poll_interval_seconds = parser.getfloat("ingest", "poll_interval_seconds")
        if parser.has_option("ingest", "publish_delay_seconds"):
            cfg.ingest.publish_delay_seconds = parser.getfloat("ingest", "publish_delay_seconds")

    # Query section
    if parser.has_section("query"):
        if parser.has_option("query", "find_timeout_seconds"):
            cfg.query.find_timeout_seconds = parser.getfloat("query", "find_timeout_seconds")
        if parser.has_option("query", "delete_timeout_seconds"):
            cfg.query.delete_timeout_seconds = parser.getfloat("query", "delete_timeout_seconds")
        if parser.has_option("query", "create_timeout_seconds"):
            cfg.query.create_timeout_seconds = parser.getfloat("query", "create_timeout_seconds")

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: AppConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Server settings
    if env_host := os.getenv("WEB_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("WEB_PORT"):
        cfg.server.port = int(env_port)

    # Bus settings
    if env_bus_url := os.getenv("BUS_URL") or os.getenv("REDIS_URL"):
        cfg.bus.url = env_bus_url
    if env_subject := os.getenv("BUS_SUBJECT"):
        cfg.bus.subject = env_subject

    # Store settings
    if env_mongo_uri := os.getenv("MONGO_URI"):
        cfg.store.uri = env_mongo_uri
    # Both names have been used by deployments; MONGO_DATABASE wins.
    if env_db := os.getenv("MONGO_DATABASE") or os.getenv("MONGO_DB"):
        cfg.store.database = env_db
    if env_collection := os.getenv("MONGO_COLLECTION"):
        cfg.store.collection = env_collection

    # Ingest settings
    if (env_blocked := os.getenv("LEDGER_BLOCKED_CODES")) is not None:
        cfg.ingest.blocked_ledger_codes = _parse_int_list(env_blocked)
    if env_inactivity := os.getenv("LEDGER_INACTIVITY_TIMEOUT"):
        cfg.ingest.inactivity_timeout_seconds = float(env_inactivity)

    # Logging settings
    if env_log := os.getenv("LEDGER_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config() -> AppConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/ledger.ini
        3. config/ledger.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        AppConfig: Fully populated configuration object.
    """
    cfg = AppConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "bus_subject": config.bus.subject,
        "store_collection": f"{config.store.database}.{config.store.collection}",
        "blocked_ledger_codes": list(config.ingest.blocked_ledger_codes),
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("LEDGER INGEST CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to ledger.ini for production)")
    print("-" * 60)
    print(f"HTTP:        {config.server.host}:{config.server.port}")
    print(f"Bus:         {config.bus.url} [{config.bus.subject}]")
    print(f"MongoDB:     {config.store.uri} -> {status['store_collection']}")
    print(f"Blocked:     {status['blocked_ledger_codes']}")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")
