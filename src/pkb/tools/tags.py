"""Tags: uniquely named labels attached to contacts."""

from __future__ import annotations

import logging
import re
import uuid
from typing import Any

import asyncpg

from pkb.errors import ConflictError, NotFoundError, ValidationError
from pkb.tools.contacts import contact_exists

logger = logging.getLogger(__name__)

_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")
_UPDATABLE_FIELDS = frozenset({"name", "color", "followup_days"})


def _validate(fields: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if "name" in fields:
        name = fields["name"]
        if not isinstance(name, str) or not name.strip() or len(name.strip()) > 50:
            raise ValidationError("Tag name must be 1-50 characters")
        out["name"] = name.strip()
    if "color" in fields:
        color = fields["color"]
        if color is not None and not _COLOR_PATTERN.match(str(color)):
            raise ValidationError("Tag color must look like #rrggbb")
        out["color"] = color
    if "followup_days" in fields:
        days = fields["followup_days"]
        if days is not None and (
            isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= 365
        ):
            raise ValidationError("followup_days must be an integer between 1 and 365")
        out["followup_days"] = days
    return out


async def tag_create(
    pool: asyncpg.Pool,
    name: str,
    color: str | None = None,
    followup_days: int | None = None,
) -> dict[str, Any]:
    """Create a tag; a duplicate name raises ConflictError."""
    values = _validate({"name": name, "color": color, "followup_days": followup_days})
    try:
        row = await pool.fetchrow(
            "INSERT INTO tags (name, color, followup_days) VALUES ($1, $2, $3) RETURNING *",
            values["name"],
            values["color"],
            values["followup_days"],
        )
    except asyncpg.UniqueViolationError as exc:
        raise ConflictError(f"Tag '{values['name']}' already exists") from exc
    logger.info("Created tag %s", row["id"])
    return dict(row)


async def tag_get(pool: asyncpg.Pool, tag_id: uuid.UUID) -> dict[str, Any]:
    row = await pool.fetchrow("SELECT * FROM tags WHERE id = $1", tag_id)
    if row is None:
        raise NotFoundError(f"Tag {tag_id} not found")
    return dict(row)


async def tag_list(pool: asyncpg.Pool) -> list[dict[str, Any]]:
    """List tags with the number of live contacts carrying each."""
    rows = await pool.fetch(
        """
        SELECT t.*, COUNT(c.id)::int AS contact_count
        FROM tags t
        LEFT JOIN contact_tags ct ON ct.tag_id = t.id
        LEFT JOIN contacts c ON c.id = ct.contact_id AND c.deleted_at IS NULL
        GROUP BY t.id
        ORDER BY t.name
        """
    )
    return [dict(row) for row in rows]


async def tag_update(pool: asyncpg.Pool, tag_id: uuid.UUID, **fields: Any) -> dict[str, Any]:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown tag fields: {', '.join(sorted(unknown))}")
    updates = _validate(fields)
    if not updates:
        raise ValidationError("No fields to update")

    columns = list(updates)
    assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))
    try:
        row = await pool.fetchrow(
            f"UPDATE tags SET {assignments} WHERE id = $1 RETURNING *",  # noqa: S608
            tag_id,
            *(updates[col] for col in columns),
        )
    except asyncpg.UniqueViolationError as exc:
        raise ConflictError(f"Tag '{updates.get('name')}' already exists") from exc
    if row is None:
        raise NotFoundError(f"Tag {tag_id} not found")
    return dict(row)


async def tag_delete(pool: asyncpg.Pool, tag_id: uuid.UUID) -> None:
    """Delete a tag and detach it from every contact."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute("DELETE FROM contact_tags WHERE tag_id = $1", tag_id)
            result = await conn.execute("DELETE FROM tags WHERE id = $1", tag_id)
            if result == "DELETE 0":
                raise NotFoundError(f"Tag {tag_id} not found")
    logger.info("Deleted tag %s", tag_id)


async def tag_add_contact(
    pool: asyncpg.Pool, tag_id: uuid.UUID, contact_id: uuid.UUID
) -> dict[str, Any]:
    """Attach a tag to a contact (idempotent)."""
    if not await contact_exists(pool, contact_id):
        raise NotFoundError(f"Contact {contact_id} not found")
    if not await pool.fetchval("SELECT 1 FROM tags WHERE id = $1", tag_id):
        raise NotFoundError(f"Tag {tag_id} not found")
    await pool.execute(
        "INSERT INTO contact_tags (contact_id, tag_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
        contact_id,
        tag_id,
    )
    return {"tag_id": tag_id, "contact_id": contact_id}


async def tag_remove_contact(pool: asyncpg.Pool, tag_id: uuid.UUID, contact_id: uuid.UUID) -> None:
    result = await pool.execute(
        "DELETE FROM contact_tags WHERE tag_id = $1 AND contact_id = $2", tag_id, contact_id
    )
    if result == "DELETE 0":
        raise NotFoundError(f"Contact {contact_id} does not carry tag {tag_id}")


async def contact_tags(pool: asyncpg.Pool, contact_id: uuid.UUID) -> list[dict[str, Any]]:
    """List the tags of a live contact, ordered by name."""
    if not await contact_exists(pool, contact_id):
        raise NotFoundError(f"Contact {contact_id} not found")
    rows = await pool.fetch(
        """
        SELECT t.* FROM tags t
        JOIN contact_tags ct ON ct.tag_id = t.id
        WHERE ct.contact_id = $1
        ORDER BY t.name
        """,
        contact_id,
    )
    return [dict(row) for row in rows]
