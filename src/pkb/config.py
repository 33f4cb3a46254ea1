"""Configuration loading and validation.

Reads an optional ``pkb.toml`` (path given explicitly, via ``PKB_CONFIG`` or in
the working directory), resolves ``${VAR}`` references against the
environment, and returns a validated :class:`PkbConfig`.  Database settings
fall back to ``DATABASE_URL`` / ``POSTGRES_*`` when the file does not set them.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pkb.db import Database, db_params_from_env, db_params_from_url

CONFIG_FILENAME = "pkb.toml"
CONFIG_ENV_VAR = "PKB_CONFIG"

# Pattern matching ${VAR_NAME}: supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_LOG_FORMATS = ("text", "json")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class DatabaseConfig:
    """[database] section."""

    url: str | None = None
    min_pool_size: int = 2
    max_pool_size: int = 10

    def params(self) -> dict[str, str | int | None]:
        if self.url:
            return db_params_from_url(self.url)
        return db_params_from_env()

    def build(self) -> Database:
        return Database.from_params(
            self.params(),
            min_pool_size=self.min_pool_size,
            max_pool_size=self.max_pool_size,
        )


@dataclass
class LoggingConfig:
    """[logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class ApiConfig:
    """[api] section."""

    host: str = "127.0.0.1"
    port: int = 4000
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])


@dataclass
class SmartListConfig:
    """[smart_lists] section.

    ``scan_batch_size`` bounds how many contacts are loaded per round trip
    while evaluating a list.
    """

    default_page_size: int = 50
    max_page_size: int = 100
    scan_batch_size: int = 500

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.default_page_size
        return min(max(int(limit), 1), self.max_page_size)


@dataclass
class PkbConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    smart_lists: SmartListConfig = field(default_factory=SmartListConfig)
    source: Path | None = None


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values are returned
    unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _positive_int(section: dict[str, Any], key: str, default: int, *, where: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ConfigError(f"{where}.{key} must be a positive integer, got {raw!r}")
    return raw


def _parse_database(section: dict[str, Any]) -> DatabaseConfig:
    url = section.get("url")
    if url is not None and (not isinstance(url, str) or not url.strip()):
        raise ConfigError("database.url must be a non-empty string when set")
    min_size = _positive_int(section, "min_pool_size", 2, where="database")
    max_size = _positive_int(section, "max_pool_size", 10, where="database")
    if min_size > max_size:
        raise ConfigError("database.min_pool_size must not exceed database.max_pool_size")
    return DatabaseConfig(url=url, min_pool_size=min_size, max_pool_size=max_size)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    level = str(section.get("level", os.environ.get("LOG_LEVEL", "INFO"))).upper()
    fmt = str(section.get("format", os.environ.get("LOG_FORMAT", "text"))).lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(f"logging.format must be one of {', '.join(_LOG_FORMATS)}, got {fmt!r}")
    log_root = section.get("log_root")
    return LoggingConfig(level=level, format=fmt, log_root=str(log_root) if log_root else None)


def _parse_api(section: dict[str, Any]) -> ApiConfig:
    host = str(section.get("host", "127.0.0.1"))
    port = _positive_int(section, "port", int(os.environ.get("PORT", "4000")), where="api")
    origins = section.get("cors_origins", ["http://localhost:3000"])
    if not isinstance(origins, list) or not all(isinstance(o, str) for o in origins):
        raise ConfigError("api.cors_origins must be a list of strings")
    return ApiConfig(host=host, port=port, cors_origins=list(origins))


def _parse_smart_lists(section: dict[str, Any]) -> SmartListConfig:
    default_size = _positive_int(section, "default_page_size", 50, where="smart_lists")
    max_size = _positive_int(section, "max_page_size", 100, where="smart_lists")
    batch = _positive_int(section, "scan_batch_size", 500, where="smart_lists")
    if default_size > max_size:
        raise ConfigError("smart_lists.default_page_size must not exceed max_page_size")
    return SmartListConfig(
        default_page_size=default_size, max_page_size=max_size, scan_batch_size=batch
    )


def _find_config_file(path: Path | None) -> Path | None:
    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidate = Path(env_path)
        if not candidate.exists():
            raise ConfigError(f"Config file not found: {candidate} (from {CONFIG_ENV_VAR})")
        return candidate
    candidate = Path.cwd() / CONFIG_FILENAME
    return candidate if candidate.exists() else None


def load_config(path: Path | None = None) -> PkbConfig:
    """Load and validate configuration.

    Without a config file every section takes its defaults (plus environment
    fallbacks), so a bare ``DATABASE_URL`` is enough to run.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or has invalid values.
    """
    toml_path = _find_config_file(path)
    data: dict[str, Any] = {}
    if toml_path is not None:
        try:
            data = tomllib.loads(toml_path.read_text())
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc
        data = resolve_env_vars(data)

    return PkbConfig(
        database=_parse_database(_section(data, "database")),
        logging=_parse_logging(_section(data, "logging")),
        api=_parse_api(_section(data, "api")),
        smart_lists=_parse_smart_lists(_section(data, "smart_lists")),
        source=toml_path,
    )
