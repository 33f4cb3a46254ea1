"""Groups: a forest of named contact groups, at most five levels deep.

Every hierarchy mutation locks the ``groups`` table and re-reads the parent
map inside its transaction, so the depth and acyclicity checks see the same
state the write commits against.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import asyncpg

from pkb.core.audit import write_audit_entry
from pkb.errors import ConflictError, NotFoundError, ValidationError
from pkb.tools import hierarchy
from pkb.tools.contacts import contact_exists
from pkb.tools.hierarchy import MAX_GROUP_DEPTH

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"name", "parent_id", "followup_days"})

_GROUP_COUNT_SQL = """
    SELECT g.id, g.name, g.parent_id, g.followup_days, g.created_at, g.updated_at,
           COUNT(c.id)::int AS contact_count
    FROM groups g
    LEFT JOIN contact_groups cg ON cg.group_id = g.id
    LEFT JOIN contacts c ON c.id = cg.contact_id AND c.deleted_at IS NULL
    GROUP BY g.id
    ORDER BY g.name, g.id
"""


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Group name must be a non-empty string")
    name = name.strip()
    if len(name) > 100:
        raise ValidationError("Group name must be at most 100 characters")
    return name


def _validate_followup_days(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 365:
        raise ValidationError("followup_days must be an integer between 1 and 365")
    return value


async def _lock_and_load_parents(
    conn: asyncpg.Connection,
) -> dict[uuid.UUID, uuid.UUID | None]:
    await conn.execute("LOCK TABLE groups IN SHARE ROW EXCLUSIVE MODE")
    rows = await conn.fetch("SELECT id, parent_id FROM groups")
    return {row["id"]: row["parent_id"] for row in rows}


async def group_create(
    pool: asyncpg.Pool,
    name: str,
    parent_id: uuid.UUID | None = None,
    followup_days: int | None = None,
) -> dict[str, Any]:
    """Create a group, optionally under *parent_id*.

    Raises:
        NotFoundError: If the parent group does not exist.
        ConflictError: If the new group would sit deeper than five levels.
    """
    name = _validate_name(name)
    followup_days = _validate_followup_days(followup_days)

    async with pool.acquire() as conn:
        async with conn.transaction():
            parents = await _lock_and_load_parents(conn)
            if parent_id is not None:
                if parent_id not in parents:
                    raise NotFoundError("Parent group not found")
                if hierarchy.depth(parents, parent_id) >= MAX_GROUP_DEPTH:
                    raise ConflictError(
                        "Cannot create group: maximum hierarchy depth of "
                        f"{MAX_GROUP_DEPTH} exceeded"
                    )
            row = await conn.fetchrow(
                """
                INSERT INTO groups (name, parent_id, followup_days)
                VALUES ($1, $2, $3)
                RETURNING *
                """,
                name,
                parent_id,
                followup_days,
            )
            group = dict(row)
            await write_audit_entry(conn, "group", group["id"], "create", new_value=group)

    logger.info("Created group %s (parent=%s)", group["id"], parent_id)
    return group


async def group_get(pool: asyncpg.Pool, group_id: uuid.UUID) -> dict[str, Any]:
    """Get a group with its live contact count."""
    row = await pool.fetchrow(
        """
        SELECT g.*, COUNT(c.id)::int AS contact_count
        FROM groups g
        LEFT JOIN contact_groups cg ON cg.group_id = g.id
        LEFT JOIN contacts c ON c.id = cg.contact_id AND c.deleted_at IS NULL
        WHERE g.id = $1
        GROUP BY g.id
        """,
        group_id,
    )
    if row is None:
        raise NotFoundError(f"Group {group_id} not found")
    return dict(row)


async def group_update(pool: asyncpg.Pool, group_id: uuid.UUID, **fields: Any) -> dict[str, Any]:
    """Update any of ``name``, ``parent_id`` and ``followup_days``.

    Passing ``parent_id=None`` promotes the group to a root; omitting
    ``parent_id`` leaves the parent untouched.

    Raises:
        ValidationError: If no (or unknown) fields are given.
        NotFoundError: If the group or the new parent does not exist.
        ConflictError: If the move would create a cycle or exceed the depth limit.
    """
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown group fields: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError("No fields to update")

    updates: dict[str, Any] = {}
    if "name" in fields:
        updates["name"] = _validate_name(fields["name"])
    if "followup_days" in fields:
        updates["followup_days"] = _validate_followup_days(fields["followup_days"])
    if "parent_id" in fields:
        updates["parent_id"] = fields["parent_id"]

    async with pool.acquire() as conn:
        async with conn.transaction():
            parents = await _lock_and_load_parents(conn)
            if group_id not in parents:
                raise NotFoundError(f"Group {group_id} not found")

            new_parent = updates.get("parent_id")
            if new_parent is not None:
                if new_parent == group_id:
                    raise ConflictError("Cannot set group as its own parent")
                if new_parent not in parents:
                    raise NotFoundError("Parent group not found")
                if hierarchy.is_descendant(parents, group_id, new_parent):
                    raise ConflictError("Cannot set parent: would create a cycle")
                new_depth = (
                    hierarchy.depth(parents, new_parent)
                    + hierarchy.subtree_height(parents, group_id)
                    + 1
                )
                if new_depth > MAX_GROUP_DEPTH:
                    raise ConflictError(
                        f"Cannot move group: maximum hierarchy depth of {MAX_GROUP_DEPTH} exceeded"
                    )

            old = dict(await conn.fetchrow("SELECT * FROM groups WHERE id = $1", group_id))
            columns = list(updates)
            assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))
            row = await conn.fetchrow(
                f"UPDATE groups SET {assignments}, updated_at = now() "  # noqa: S608
                "WHERE id = $1 RETURNING *",
                group_id,
                *(updates[col] for col in columns),
            )
            group = dict(row)
            await write_audit_entry(
                conn, "group", group_id, "update", old_value=old, new_value=group
            )

    logger.info("Updated group %s (%s)", group_id, ", ".join(columns))
    return group


async def group_delete(pool: asyncpg.Pool, group_id: uuid.UUID) -> None:
    """Delete a leaf group and its contact associations.

    Raises:
        NotFoundError: If the group does not exist.
        ConflictError: If the group still has child groups.
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            parents = await _lock_and_load_parents(conn)
            if group_id not in parents:
                raise NotFoundError(f"Group {group_id} not found")
            if any(parent == group_id for parent in parents.values()):
                raise ConflictError("Cannot delete group with children. Delete children first.")
            old = dict(await conn.fetchrow("SELECT * FROM groups WHERE id = $1", group_id))
            await conn.execute("DELETE FROM contact_groups WHERE group_id = $1", group_id)
            await conn.execute("DELETE FROM groups WHERE id = $1", group_id)
            await write_audit_entry(conn, "group", group_id, "delete", old_value=old)

    logger.info("Deleted group %s", group_id)


async def group_list_flat(pool: asyncpg.Pool) -> list[dict[str, Any]]:
    """List all groups with live contact counts, ordered by name."""
    rows = await pool.fetch(_GROUP_COUNT_SQL)
    return [dict(row) for row in rows]


async def group_list(pool: asyncpg.Pool) -> list[dict[str, Any]]:
    """List all groups as a name-sorted tree with live contact counts."""
    return hierarchy.build_group_tree(await group_list_flat(pool))


async def group_add_contact(
    pool: asyncpg.Pool, group_id: uuid.UUID, contact_id: uuid.UUID
) -> dict[str, Any]:
    """Add a contact to a group (idempotent)."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            if not await contact_exists(conn, contact_id):
                raise NotFoundError(f"Contact {contact_id} not found")
            if not await conn.fetchval("SELECT 1 FROM groups WHERE id = $1", group_id):
                raise NotFoundError(f"Group {group_id} not found")
            await conn.execute(
                """
                INSERT INTO contact_groups (contact_id, group_id)
                VALUES ($1, $2)
                ON CONFLICT DO NOTHING
                """,
                contact_id,
                group_id,
            )
    return {"group_id": group_id, "contact_id": contact_id}


async def group_remove_contact(
    pool: asyncpg.Pool, group_id: uuid.UUID, contact_id: uuid.UUID
) -> None:
    """Remove a contact from a group.

    Raises:
        NotFoundError: If the contact is not a member of the group.
    """
    result = await pool.execute(
        "DELETE FROM contact_groups WHERE group_id = $1 AND contact_id = $2",
        group_id,
        contact_id,
    )
    if result == "DELETE 0":
        raise NotFoundError(f"Contact {contact_id} is not in group {group_id}")


async def contact_groups(pool: asyncpg.Pool, contact_id: uuid.UUID) -> list[dict[str, Any]]:
    """List the groups a live contact belongs to, ordered by name."""
    if not await contact_exists(pool, contact_id):
        raise NotFoundError(f"Contact {contact_id} not found")
    rows = await pool.fetch(
        """
        SELECT g.* FROM groups g
        JOIN contact_groups cg ON cg.group_id = g.id
        WHERE cg.contact_id = $1
        ORDER BY g.name, g.id
        """,
        contact_id,
    )
    return [dict(row) for row in rows]
