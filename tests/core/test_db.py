"""Tests for pkb.db connection parameter handling."""

from __future__ import annotations

import pytest

from pkb.db import (
    DEFAULT_DB_NAME,
    Database,
    db_params_from_env,
    db_params_from_url,
    should_retry_with_ssl_disable,
)

pytestmark = pytest.mark.unit


def test_params_from_url():
    params = db_params_from_url("postgresql://ada:pw@db.local:6543/people?sslmode=REQUIRE")
    assert params == {
        "host": "db.local",
        "port": 6543,
        "user": "ada",
        "password": "pw",
        "database": "people",
        "ssl": "require",
    }


def test_invalid_sslmode_ignored():
    assert db_params_from_url("postgresql://h/db?sslmode=bogus")["ssl"] is None


def test_env_fallback(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("POSTGRES_HOST", "pg")
    monkeypatch.setenv("POSTGRES_PORT", "5999")
    monkeypatch.delenv("POSTGRES_DB", raising=False)
    params = db_params_from_env()
    assert (params["host"], params["port"], params["database"]) == ("pg", 5999, DEFAULT_DB_NAME)


def test_env_prefers_database_url(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@h:1/x")
    monkeypatch.setenv("POSTGRES_HOST", "ignored")
    assert db_params_from_env()["host"] == "h"


def test_dsn_round_trips_through_params():
    db = Database.from_params(db_params_from_url("postgresql://u:p@h:1/x?sslmode=disable"))
    assert db.dsn == "postgresql://u:p@h:1/x?sslmode=disable"


def test_require_pool_before_connect():
    with pytest.raises(RuntimeError, match="no active connection pool"):
        Database().require_pool()


def test_ssl_retry_only_for_connection_lost():
    lost = ConnectionError("unexpected connection_lost() call")
    assert should_retry_with_ssl_disable(lost, None)
    assert not should_retry_with_ssl_disable(lost, "require")
    assert not should_retry_with_ssl_disable(OSError("refused"), None)
