"""
Server configuration management.

This module handles loading and accessing server configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The ServerConfig
dataclass provides typed access to all settings.

Usage:
    from share_ledger.config import config

    # Access settings
    print(config.server.host)
    print(config.ledger.reservation_ttl_seconds)
    print(config.payment.mode)

Environment Variable Mapping:
    SHARES_HOST                    -> server.host
    SHARES_PORT                    -> server.port
    SHARES_PRODUCTION              -> security.production
    SHARES_CORS_ORIGINS            -> security.cors_origins
    SHARES_DB_PATH                 -> database.path
    SHARES_LOG_LEVEL               -> logging.level
    SHARES_LOG_FORMAT              -> logging.format
    SHARES_RESERVATION_TTL_SECONDS -> ledger.reservation_ttl_seconds
    SHARES_PAYMENT_MODE            -> payment.mode
    SHARES_PAYMENT_URL             -> payment.gateway_url
    SHARES_PAYMENT_API_KEY         -> payment.api_key
    SHARES_PAYMENT_TIMEOUT         -> payment.timeout_seconds
    SHARES_PAYMENT_MAX_RETRIES     -> payment.max_retries
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    production: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = field(default_factory=lambda: ["*"])
    cors_allow_headers: list[str] = field(default_factory=lambda: ["*"])
    docs_enabled: Literal["auto", "enabled", "disabled"] = "auto"


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/shares.db"
    busy_timeout_ms: int = 5000

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class LedgerSettings:
    """Inventory reservation and journal settings."""

    reservation_ttl_seconds: int = 900
    sweep_batch_size: int = 100


@dataclass
class PaymentSettings:
    """Payment collaborator settings.

    ``mode`` selects the gateway implementation: ``simulated`` settles every
    charge locally (development), ``http`` talks to a remote processor.
    """

    mode: Literal["simulated", "http"] = "simulated"
    gateway_url: str = "http://localhost:9000"
    api_key: str = ""
    timeout_seconds: float = 10.0
    max_retries: int = 2


@dataclass
class ServerConfig:
    """
    Complete server configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    payment: PaymentSettings = field(default_factory=PaymentSettings)

    @property
    def is_production(self) -> bool:
        """Convenience property for production mode check."""
        return self.security.production

    @property
    def docs_should_be_enabled(self) -> bool:
        """Determine if API docs should be enabled based on settings."""
        if self.security.docs_enabled == "enabled":
            return True
        if self.security.docs_enabled == "disabled":
            return False
        # "auto" - follow production setting
        return not self.is_production


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_ini(parser: configparser.ConfigParser, cfg: ServerConfig) -> None:
    """Load configuration from parsed INI file into ServerConfig."""
    # Server section
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    # Security section
    if parser.has_section("security"):
        if parser.has_option("security", "production"):
            cfg.security.production = _parse_bool(parser.get("security", "production"))
        if parser.has_option("security", "cors_origins"):
            cfg.security.cors_origins = _parse_list(parser.get("security", "cors_origins"))
        if parser.has_option("security", "cors_allow_credentials"):
            cfg.security.cors_allow_credentials = _parse_bool(
                parser.get("security", "cors_allow_credentials")
            )
        if parser.has_option("security", "docs_enabled"):
            val = parser.get("security", "docs_enabled").lower()
            if val in ("auto", "enabled", "disabled"):
                cfg.security.docs_enabled = val  # type: ignore[assignment]

    # Database section
    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")
        if parser.has_option("database", "busy_timeout_ms"):
            cfg.database.busy_timeout_ms = parser.getint("database", "busy_timeout_ms")

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]

    # Ledger section
    if parser.has_section("ledger"):
        if parser.has_option("ledger", "reservation_ttl_seconds"):
            cfg.ledger.reservation_ttl_seconds = parser.getint(
                "ledger", "reservation_ttl_seconds"
            )
        if parser.has_option("ledger", "sweep_batch_size"):
            cfg.ledger.sweep_batch_size = parser.getint("ledger", "sweep_batch_size")

    # Payment section
    if parser.has_section("payment"):
        if parser.has_option("payment", "mode"):
            val = parser.get("payment", "mode").lower()
            if val in ("simulated", "http"):
                cfg.payment.mode = val  # type: ignore[assignment]
        if parser.has_option("payment", "gateway_url"):
            cfg.payment.gateway_url = parser.get("payment", "gateway_url")
        if parser.has_option("payment", "api_key"):
            cfg.payment.api_key = parser.get("payment", "api_key")
        if parser.has_option("payment", "timeout_seconds"):
            cfg.payment.timeout_seconds = parser.getfloat("payment", "timeout_seconds")
        if parser.has_option("payment", "max_retries"):
            cfg.payment.max_retries = parser.getint("payment", "max_retries")


def _apply_env_overrides(cfg: ServerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Server settings
    if env_host := os.getenv("SHARES_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("SHARES_PORT"):
        cfg.server.port = int(env_port)

    # Security settings
    if env_production := os.getenv("SHARES_PRODUCTION"):
        cfg.security.production = _parse_bool(env_production)
    if env_cors := os.getenv("SHARES_CORS_ORIGINS"):
        cfg.security.cors_origins = _parse_list(env_cors)

    # Database settings
    if env_db := os.getenv("SHARES_DB_PATH"):
        cfg.database.path = env_db

    # Logging settings
    if env_log := os.getenv("SHARES_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("SHARES_LOG_FORMAT"):
        if env_log_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]

    # Ledger settings
    if env_ttl := os.getenv("SHARES_RESERVATION_TTL_SECONDS"):
        cfg.ledger.reservation_ttl_seconds = int(env_ttl)

    # Payment settings
    if env_mode := os.getenv("SHARES_PAYMENT_MODE"):
        if env_mode.lower() in ("simulated", "http"):
            cfg.payment.mode = env_mode.lower()  # type: ignore[assignment]
    if env_url := os.getenv("SHARES_PAYMENT_URL"):
        cfg.payment.gateway_url = env_url
    if env_key := os.getenv("SHARES_PAYMENT_API_KEY"):
        cfg.payment.api_key = env_key
    if env_timeout := os.getenv("SHARES_PAYMENT_TIMEOUT"):
        cfg.payment.timeout_seconds = float(env_timeout)
    if env_retries := os.getenv("SHARES_PAYMENT_MAX_RETRIES"):
        cfg.payment.max_retries = int(env_retries)


def load_config() -> ServerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        ServerConfig: Fully populated configuration object.
    """
    cfg = ServerConfig()

    # Determine which config file to use
    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        # Use example as fallback for development
        config_file = CONFIG_EXAMPLE

    # Load from INI file if available
    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    # Apply environment variable overrides (highest priority)
    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "ServerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Use sparingly as it
    doesn't update already-running server middleware.

    Returns:
        ServerConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging and the operator CLI.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "production_mode": config.is_production,
        "payment_mode": config.payment.mode,
        "reservation_ttl_seconds": config.ledger.reservation_ttl_seconds,
        "docs_enabled": config.docs_should_be_enabled,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("SHARE LEDGER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to server.ini for production)")
    print("-" * 60)
    print(f"Server:      {config.server.host}:{config.server.port}")
    print(f"Production:  {config.is_production}")
    print(f"Docs enabled: {config.docs_should_be_enabled}")
    print(f"Database:    {config.database.absolute_path}")
    print(f"Payments:    {config.payment.mode} ({config.payment.gateway_url})")
    print(f"Reservation TTL: {config.ledger.reservation_ttl_seconds}s")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    This is the recommended way to set up test databases. It properly
    configures the config system to use a temporary database path.

    Usage:
        from share_ledger.config import use_test_database

        def test_something(tmp_path):
            db_path = tmp_path / "test.db"
            with use_test_database(db_path):
                # Database operations will use db_path
                schema.init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
