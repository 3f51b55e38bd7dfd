"""Tests for share_ledger.config file loading and environment overrides."""

import configparser

import pytest

from share_ledger import config as config_module
from share_ledger.config import (
    ServerConfig,
    _load_from_ini,
    _parse_bool,
    _parse_list,
    get_config_status,
    load_config,
    print_config_summary,
    use_test_database,
)


@pytest.mark.unit
def test_defaults():
    cfg = ServerConfig()

    assert cfg.server.port == 8000
    assert cfg.database.busy_timeout_ms == 5000
    assert cfg.ledger.reservation_ttl_seconds == 900
    assert cfg.payment.mode == "simulated"
    assert cfg.logging.format == "detailed"


@pytest.mark.unit
def test_server_and_database_env_overrides(monkeypatch):
    monkeypatch.setenv("SHARES_HOST", "127.0.0.1")
    monkeypatch.setenv("SHARES_PORT", "8123")
    monkeypatch.setenv("SHARES_DB_PATH", "/tmp/ledger.db")
    monkeypatch.setenv("SHARES_PRODUCTION", "yes")
    monkeypatch.setenv("SHARES_CORS_ORIGINS", "https://a.example, https://b.example")

    cfg = load_config()

    assert cfg.server.host == "127.0.0.1"
    assert cfg.server.port == 8123
    assert cfg.database.path == "/tmp/ledger.db"
    assert str(cfg.database.absolute_path) == "/tmp/ledger.db"
    assert cfg.is_production is True
    assert cfg.security.cors_origins == ["https://a.example", "https://b.example"]


@pytest.mark.unit
def test_reload_config_rebinds_singleton(monkeypatch):
    monkeypatch.setattr(config_module, "config", config_module.config)
    monkeypatch.setenv("SHARES_PORT", "9321")

    reloaded = config_module.reload_config()

    assert reloaded.server.port == 9321
    assert config_module.config is reloaded


@pytest.mark.unit
def test_ledger_and_payment_env_overrides(monkeypatch):
    monkeypatch.setenv("SHARES_RESERVATION_TTL_SECONDS", "60")
    monkeypatch.setenv("SHARES_PAYMENT_MODE", "HTTP")
    monkeypatch.setenv("SHARES_PAYMENT_URL", "https://pay.example.org")
    monkeypatch.setenv("SHARES_PAYMENT_API_KEY", "sk_test")
    monkeypatch.setenv("SHARES_PAYMENT_TIMEOUT", "2.5")
    monkeypatch.setenv("SHARES_PAYMENT_MAX_RETRIES", "4")

    cfg = load_config()

    assert cfg.ledger.reservation_ttl_seconds == 60
    assert cfg.payment.mode == "http"
    assert cfg.payment.gateway_url == "https://pay.example.org"
    assert cfg.payment.api_key == "sk_test"
    assert cfg.payment.timeout_seconds == 2.5
    assert cfg.payment.max_retries == 4


@pytest.mark.unit
def test_unknown_enum_values_are_ignored(monkeypatch):
    monkeypatch.setenv("SHARES_PAYMENT_MODE", "carrier-pigeon")
    monkeypatch.setenv("SHARES_LOG_FORMAT", "xml")

    cfg = load_config()

    assert cfg.payment.mode == "simulated"
    assert cfg.logging.format == "detailed"


@pytest.mark.unit
def test_ini_sections():
    """Every ledger-specific section should load from the INI file."""
    parser = configparser.ConfigParser()
    parser.read_dict(
        {
            "server": {"host": "localhost", "port": "9001"},
            "database": {"path": "var/ledger.db", "busy_timeout_ms": "250"},
            "logging": {"level": "debug", "format": "json"},
            "ledger": {"reservation_ttl_seconds": "30", "sweep_batch_size": "10"},
            "payment": {
                "mode": "http",
                "gateway_url": "https://pay.internal",
                "timeout_seconds": "3",
                "max_retries": "0",
            },
            "security": {"docs_enabled": "disabled", "cors_origins": ""},
        }
    )

    cfg = ServerConfig()
    _load_from_ini(parser, cfg)

    assert cfg.server.host == "localhost"
    assert cfg.server.port == 9001
    assert cfg.database.busy_timeout_ms == 250
    assert cfg.database.absolute_path.is_absolute()
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "json"
    assert cfg.ledger.reservation_ttl_seconds == 30
    assert cfg.ledger.sweep_batch_size == 10
    assert cfg.payment.mode == "http"
    assert cfg.payment.timeout_seconds == 3.0
    assert cfg.payment.max_retries == 0
    assert cfg.security.cors_origins == []
    assert cfg.docs_should_be_enabled is False


@pytest.mark.unit
@pytest.mark.parametrize(
    "docs_enabled,production,expected",
    [
        ("enabled", True, True),
        ("disabled", False, False),
        ("auto", False, True),
        ("auto", True, False),
    ],
)
def test_docs_toggle(docs_enabled, production, expected):
    cfg = ServerConfig()
    cfg.security.docs_enabled = docs_enabled
    cfg.security.production = production
    assert cfg.docs_should_be_enabled is expected


@pytest.mark.unit
def test_parse_helpers():
    assert _parse_bool("On") is True
    assert _parse_bool("off") is False
    assert _parse_list(" a, ,b ") == ["a", "b"]
    assert _parse_list("   ") == []


@pytest.mark.unit
def test_use_test_database_restores_path(tmp_path):
    original = config_module.config.database.path

    with use_test_database(tmp_path / "scratch.db") as db_path:
        assert config_module.config.database.path == str(db_path)

    assert config_module.config.database.path == original


@pytest.mark.unit
def test_config_status_and_summary(capsys):
    status = get_config_status()
    assert status["payment_mode"] in ("simulated", "http")
    assert isinstance(status["reservation_ttl_seconds"], int)

    print_config_summary()

    output = capsys.readouterr().out
    assert "SHARE LEDGER CONFIGURATION" in output
    assert "Reservation TTL:" in output
