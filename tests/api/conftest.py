"""Shared fixtures for pkb API tests.

The app is built with a no-op lifespan so no database is opened; the pool
dependency is overridden with a mock and tool functions are patched per test.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pkb.api.app import create_app
from pkb.api.deps import get_config, get_pool
from pkb.config import PkbConfig


@asynccontextmanager
async def _null_lifespan(_app):
    yield


def build_test_app(*, pool=None, config: PkbConfig | None = None) -> FastAPI:
    """Create the app with lifespan suppressed and dependencies overridden."""
    config = config or PkbConfig()
    app = create_app(config=config, cors_origins=["*"])
    app.router.lifespan_context = _null_lifespan
    mock_pool = pool if pool is not None else MagicMock()
    app.dependency_overrides[get_pool] = lambda: mock_pool
    app.dependency_overrides[get_config] = lambda: config
    return app


@pytest.fixture
def mock_pool() -> MagicMock:
    pool = MagicMock()
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.execute = AsyncMock(return_value="DELETE 0")
    return pool


@pytest.fixture
def app_factory(mock_pool):
    """Build a test app around *mock_pool* with an optional custom config."""

    def _factory(config: PkbConfig | None = None) -> FastAPI:
        return build_test_app(pool=mock_pool, config=config)

    return _factory


@pytest.fixture
def client(app_factory) -> TestClient:
    return TestClient(app_factory())
