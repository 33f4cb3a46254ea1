"""Tests for pkb.config: TOML loading, env expansion and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from pkb.config import (
    CONFIG_ENV_VAR,
    ConfigError,
    PkbConfig,
    SmartListConfig,
    load_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for var in (CONFIG_ENV_VAR, "DATABASE_URL", "LOG_LEVEL", "LOG_FORMAT", "PORT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "pkb.toml"
    path.write_text(text)
    return path


class TestDefaults:
    def test_no_file_gives_defaults(self):
        config = load_config()
        assert config == PkbConfig()
        assert config.source is None
        assert config.smart_lists.max_page_size == 100

    def test_cwd_file_is_found(self, tmp_path: Path):
        _write(tmp_path, "[api]\nport = 8080\n")
        config = load_config()
        assert config.api.port == 8080
        assert config.source == tmp_path / "pkb.toml"

    def test_env_var_points_at_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        other = tmp_path / "elsewhere.toml"
        other.write_text("[logging]\nformat = 'json'\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(other))
        assert load_config().logging.format == "json"


class TestFullFile:
    def test_all_sections(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PKB_DB_PASSWORD", "s3cret")
        path = _write(
            tmp_path,
            """
            [database]
            url = "postgresql://pkb:${PKB_DB_PASSWORD}@db:5433/people"
            min_pool_size = 1
            max_pool_size = 4

            [logging]
            level = "debug"
            format = "json"
            log_root = "logs"

            [api]
            host = "0.0.0.0"
            port = 9000
            cors_origins = ["https://pkb.example"]

            [smart_lists]
            default_page_size = 25
            max_page_size = 50
            scan_batch_size = 200
            """,
        )
        config = load_config(path)
        assert config.database.params()["password"] == "s3cret"
        assert config.database.params()["port"] == 5433
        db = config.database.build()
        assert (db.db_name, db.max_pool_size) == ("people", 4)
        assert config.logging.level == "DEBUG"
        assert config.logging.log_root == "logs"
        assert config.api.cors_origins == ["https://pkb.example"]
        assert config.smart_lists == SmartListConfig(25, 50, 200)


class TestErrors:
    def test_explicit_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write(tmp_path, "[api\n"))

    def test_unresolved_env_var(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="NOPE_NOT_SET"):
            load_config(_write(tmp_path, '[database]\nurl = "${NOPE_NOT_SET}"\n'))

    @pytest.mark.parametrize(
        "text",
        [
            "[database]\nmin_pool_size = 0\n",
            "[database]\nmin_pool_size = 5\nmax_pool_size = 2\n",
            "[api]\nport = true\n",
            "[api]\ncors_origins = 'x'\n",
            "[logging]\nformat = 'xml'\n",
            "[smart_lists]\ndefault_page_size = 200\n",
            "database = 3\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, text))


class TestResolveEnvVars:
    def test_nested(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HOST", "db")
        assert resolve_env_vars({"a": ["${HOST}:5432", 3]}) == {"a": ["db:5432", 3]}


class TestClampLimit:
    @pytest.mark.parametrize(("limit", "expected"), [(None, 50), (0, 1), (10, 10), (500, 100)])
    def test_clamp(self, limit, expected):
        assert SmartListConfig().clamp_limit(limit) == expected
