"""Tests for pkb.tools.tags validation and error mapping."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from pkb.errors import ConflictError, NotFoundError, ValidationError
from pkb.tools.tags import tag_add_contact, tag_create, tag_remove_contact, tag_update

pytestmark = pytest.mark.unit


@pytest.fixture
def pool() -> MagicMock:
    pool = MagicMock()
    pool.fetchrow = AsyncMock()
    pool.fetchval = AsyncMock()
    pool.execute = AsyncMock()
    return pool


class TestTagCreate:
    async def test_strips_name(self, pool):
        pool.fetchrow.return_value = {"id": uuid.uuid4(), "name": "vip"}
        await tag_create(pool, "  vip ", color="#AABBCC")
        assert pool.fetchrow.await_args.args[1:] == ("vip", "#AABBCC", None)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"name": "x" * 51},
            {"name": "ok", "color": "red"},
            {"name": "ok", "followup_days": 400},
        ],
    )
    async def test_invalid(self, pool, kwargs):
        with pytest.raises(ValidationError):
            await tag_create(pool, **kwargs)
        pool.fetchrow.assert_not_awaited()

    async def test_duplicate_name_is_conflict(self, pool):
        pool.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")
        with pytest.raises(ConflictError, match="already exists"):
            await tag_create(pool, "vip")


class TestTagUpdate:
    async def test_unknown_field(self, pool):
        with pytest.raises(ValidationError, match="Unknown tag fields"):
            await tag_update(pool, uuid.uuid4(), parent_id=None)

    async def test_missing_tag(self, pool):
        pool.fetchrow.return_value = None
        with pytest.raises(NotFoundError):
            await tag_update(pool, uuid.uuid4(), color=None)


class TestTagMembership:
    async def test_missing_contact(self, pool):
        pool.fetchval.return_value = None
        with pytest.raises(NotFoundError, match="Contact"):
            await tag_add_contact(pool, uuid.uuid4(), uuid.uuid4())
        pool.execute.assert_not_awaited()

    async def test_remove_absent(self, pool):
        pool.execute.return_value = "DELETE 0"
        with pytest.raises(NotFoundError):
            await tag_remove_contact(pool, uuid.uuid4(), uuid.uuid4())
