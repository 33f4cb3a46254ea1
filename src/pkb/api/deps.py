"""FastAPI dependencies for the pkb API.

Routers depend on the stubs below; :func:`wire_dependencies` overrides them
with the live pool and config at startup.  Tests override them the same way
through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import FastAPI

from pkb.config import PkbConfig

logger = logging.getLogger(__name__)


def get_pool() -> asyncpg.Pool:
    """Dependency stub: overridden at app startup or in tests."""
    raise RuntimeError("Database pool not initialized")


def get_config() -> PkbConfig:
    """Dependency stub: overridden at app startup or in tests."""
    return PkbConfig()


def wire_dependencies(app: FastAPI, pool: asyncpg.Pool, config: PkbConfig) -> None:
    """Point the dependency stubs at the live pool and config."""
    app.dependency_overrides[get_pool] = lambda: pool
    app.dependency_overrides[get_config] = lambda: config
    logger.debug("API dependencies wired (pool=%s)", type(pool).__name__)
