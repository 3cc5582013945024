# tests/test_configuration.py
"""
Tests for the configuration package.

These tests verify:
1. The validation helper reports no errors on a default configuration.
2. Cross-field checks flag unusable values.
3. The reload mechanism updates settings when environment variables change.
"""

from __future__ import annotations

import pytest

# Import the config package (the public API lives in ``config.__init__``)
import config
from config.settings import AgeClientSettings
from config.validator import validate_all


def _fields(report: dict, severity: str) -> list[str]:
    return [issue["field"] for issue in report["issues"][severity]]


def test_validation_report_is_healthy():
    """A default configuration should be reported as healthy."""
    report = validate_all(AgeClientSettings())
    assert report["overall_health"] == "healthy"
    assert not report["issues"]["errors"]
    assert not report["issues"]["warnings"]


def test_default_password_is_reported_as_info():
    report = validate_all(AgeClientSettings(AGE_DSN=None, PGPASSWORD="postgres"))
    assert "PGPASSWORD" in _fields(report, "info")


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"BATCH_SIZE": 0}, "BATCH_SIZE"),
        ({"TRANSACTION_TIMEOUT_SECONDS": 0}, "TRANSACTION_TIMEOUT_SECONDS"),
        ({"MAX_PARALLEL_BATCHES": 0}, "MAX_PARALLEL_BATCHES"),
        ({"AGE_GRAPH_NAME": "my-graph"}, "AGE_GRAPH_NAME"),
        ({"STAGING_TABLE": "params; drop"}, "STAGING_TABLE"),
        ({"DB_CONNECT_RETRY_ATTEMPTS": 0}, "DB_CONNECT_RETRY_ATTEMPTS"),
    ],
)
def test_invalid_values_are_errors(overrides, field):
    report = validate_all(AgeClientSettings(**overrides))
    assert report["overall_health"] == "error"
    assert field in _fields(report, "errors")


def test_parallelism_beyond_pool_is_a_warning():
    report = validate_all(AgeClientSettings(MAX_PARALLEL_BATCHES=8, DB_POOL_MAX_CONNECTIONS=4))
    assert report["overall_health"] == "warning"
    assert _fields(report, "warnings") == ["MAX_PARALLEL_BATCHES"]


def test_pool_minimum_is_clamped_to_maximum():
    current = AgeClientSettings(DB_POOL_MIN_CONNECTIONS=5, DB_POOL_MAX_CONNECTIONS=2)
    assert current.DB_POOL_MIN_CONNECTIONS == 2


def test_connection_kwargs():
    discrete = AgeClientSettings(AGE_DSN=None, PGHOST="db", PGPORT=6543, PGDATABASE="graphs")
    assert discrete.connection_kwargs()["host"] == "db"
    assert discrete.connection_kwargs()["port"] == 6543
    assert discrete.connection_kwargs()["dbname"] == "graphs"

    dsn = AgeClientSettings(AGE_DSN="postgresql://u:p@h/db")
    assert dsn.connection_kwargs() == {"dsn": "postgresql://u:p@h/db"}


def test_get_and_set_round_trip(monkeypatch):
    monkeypatch.setattr(config.settings, "BATCH_SIZE", config.settings.BATCH_SIZE)
    config.set("BATCH_SIZE", 77)
    assert config.get("BATCH_SIZE") == 77


def test_reload_applies_environment_changes(monkeypatch):
    """Changing an env var followed by ``config.reload()`` updates the settings."""
    monkeypatch.setenv("BATCH_SIZE", "250")

    assert config.reload() is True
    assert config.settings.BATCH_SIZE == 250
    assert config.BATCH_SIZE == 250

    # Reload again to revert to the original configuration
    monkeypatch.delenv("BATCH_SIZE")
    config.reload()


def test_reload_rejects_invalid_environment(monkeypatch):
    before = config.settings
    monkeypatch.setenv("BATCH_SIZE", "not-a-number")

    assert config.reload() is False
    assert config.settings is before
