"""Group hierarchy against a real PostgreSQL database."""

from __future__ import annotations

import asyncio
import shutil

import pytest

from pkb.errors import ConflictError
from pkb.tools.groups import (
    group_add_contact,
    group_create,
    group_delete,
    group_get,
    group_list,
    group_update,
)

docker_available = shutil.which("docker") is not None

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not docker_available, reason="Docker not available"),
]


async def _chain(pool, length: int) -> list[dict]:
    groups: list[dict] = []
    parent_id = None
    for level in range(1, length + 1):
        group = await group_create(pool, f"Level {level}", parent_id=parent_id)
        groups.append(group)
        parent_id = group["id"]
    return groups


async def test_depth_limit_on_create(provisioned_postgres_pool):
    async with provisioned_postgres_pool() as pool:
        chain = await _chain(pool, 5)
        with pytest.raises(ConflictError, match="maximum hierarchy depth of 5 exceeded"):
            await group_create(pool, "Level 6", parent_id=chain[-1]["id"])
        assert await pool.fetchval("SELECT COUNT(*) FROM groups") == 5


async def test_cycle_rejected_and_tree_unchanged(provisioned_postgres_pool):
    async with provisioned_postgres_pool() as pool:
        a = await group_create(pool, "A")
        b = await group_create(pool, "B", parent_id=a["id"])
        with pytest.raises(ConflictError, match="would create a cycle"):
            await group_update(pool, a["id"], parent_id=b["id"])
        tree = await group_list(pool)
        assert [n["name"] for n in tree] == ["A"]
        assert [n["name"] for n in tree[0]["children"]] == ["B"]


async def test_move_subtree_respects_depth(provisioned_postgres_pool):
    async with provisioned_postgres_pool() as pool:
        chain = await _chain(pool, 3)
        top = await group_create(pool, "Top")
        mid = await group_create(pool, "Mid", parent_id=top["id"])
        await group_create(pool, "Bottom", parent_id=mid["id"])
        # Bottom would land at depth 6.
        with pytest.raises(ConflictError, match="Cannot move group"):
            await group_update(pool, top["id"], parent_id=chain[-1]["id"])
        moved = await group_update(pool, top["id"], parent_id=chain[1]["id"])
        assert moved["parent_id"] == chain[1]["id"]
        promoted = await group_update(pool, top["id"], parent_id=None)
        assert promoted["parent_id"] is None


async def test_delete_requires_leaf(provisioned_postgres_pool):
    async with provisioned_postgres_pool() as pool:
        parent = await group_create(pool, "Parent")
        child = await group_create(pool, "Child", parent_id=parent["id"])
        contact_id = await pool.fetchval(
            "INSERT INTO contacts (display_name) VALUES ('Ada') RETURNING id"
        )
        await group_add_contact(pool, parent["id"], contact_id)
        assert (await group_get(pool, parent["id"]))["contact_count"] == 1

        with pytest.raises(ConflictError, match="Delete children first"):
            await group_delete(pool, parent["id"])

        await group_delete(pool, child["id"])
        await group_delete(pool, parent["id"])
        assert await pool.fetchval("SELECT COUNT(*) FROM contact_groups") == 0
        actions = await pool.fetch(
            "SELECT action FROM audit_log WHERE entity_id = $1 ORDER BY timestamp",
            parent["id"],
        )
        assert [r["action"] for r in actions] == ["create", "delete"]


async def test_concurrent_creates_cannot_exceed_depth(provisioned_postgres_pool):
    async with provisioned_postgres_pool(max_pool_size=4) as pool:
        chain = await _chain(pool, 4)
        leaf = chain[-1]
        results = await asyncio.gather(
            *(group_create(pool, f"Sibling {i}", parent_id=leaf["id"]) for i in range(3)),
            return_exceptions=True,
        )
        assert all(isinstance(r, dict) for r in results)
        depths = await pool.fetch(
            """
            WITH RECURSIVE walk AS (
                SELECT id, parent_id, 1 AS depth FROM groups WHERE parent_id IS NULL
                UNION ALL
                SELECT g.id, g.parent_id, w.depth + 1
                FROM groups g JOIN walk w ON g.parent_id = w.id
            )
            SELECT MAX(depth) AS max_depth FROM walk
            """
        )
        assert depths[0]["max_depth"] == 5
