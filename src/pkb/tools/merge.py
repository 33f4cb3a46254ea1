"""Contact merge: fold a source contact into a target contact.

The merge runs in a single transaction: both contacts are locked, every child
record is re-pointed (join rows de-duplicated), and the source is soft-deleted.
Any failure rolls the whole merge back, so the source is either fully merged
or untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from typing import Any

import asyncpg

from pkb.core.audit import write_audit_entry
from pkb.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Normalized identifier value, matching pkb.tools.contacts.normalize_identifier:
# emails are trimmed and lower-cased; phones keep digits and a leading '+'.
_NORMALIZED_VALUE_SQL = """
    CASE {alias}.type
        WHEN 'email' THEN lower(btrim({alias}.value))
        WHEN 'phone' THEN
            CASE WHEN regexp_replace({alias}.value, '[^0-9+]', '', 'g') LIKE '+%'
                THEN '+' || regexp_replace({alias}.value, '[^0-9]', '', 'g')
                ELSE regexp_replace({alias}.value, '[^0-9]', '', 'g')
            END
        ELSE btrim({alias}.value)
    END
"""

# Source identifiers that survive the merge: no normalized match on the target.
_MOVABLE_IDENTIFIER_SQL = f"""
    s.contact_id = $2
    AND NOT EXISTS (
        SELECT 1 FROM contact_identifiers t
        WHERE t.contact_id = $1 AND t.type = s.type
          AND {_NORMALIZED_VALUE_SQL.format(alias="t")}
              = {_NORMALIZED_VALUE_SQL.format(alias="s")}
    )
"""

# Child tables re-pointed wholesale: (table, foreign key column).
_REPOINT_TABLES = (
    ("communications", "contact_id"),
    ("facts", "contact_id"),
    ("notes", "contact_id"),
    ("followups", "contact_id"),
)


@dataclass(frozen=True)
class MergePlan:
    """Counts of the records a merge of *source* into *target* would move."""

    target_id: uuid.UUID
    source_id: uuid.UUID
    identifiers: int = 0
    communications: int = 0
    facts: int = 0
    notes: int = 0
    followups: int = 0
    relationships: int = 0
    tags: int = 0
    groups: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``'UPDATE 3'``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError, IndexError):
        return 0


def _check_ids(target_id: uuid.UUID, source_id: uuid.UUID) -> None:
    if target_id == source_id:
        raise ValidationError("Cannot merge a contact with itself")


async def _require_live_contacts(
    conn: asyncpg.Connection,
    target_id: uuid.UUID,
    source_id: uuid.UUID,
    *,
    for_update: bool,
) -> dict[uuid.UUID, dict[str, Any]]:
    lock = " FOR UPDATE" if for_update else ""
    rows = await conn.fetch(
        "SELECT * FROM contacts WHERE id = ANY($1::uuid[]) AND deleted_at IS NULL "
        f"ORDER BY id{lock}",
        [target_id, source_id],
    )
    found = {row["id"]: dict(row) for row in rows}
    if target_id not in found:
        raise NotFoundError(f"Target contact {target_id} not found")
    if source_id not in found:
        raise NotFoundError(f"Source contact {source_id} not found")
    return found


async def _count_plan(
    conn: asyncpg.Connection, target_id: uuid.UUID, source_id: uuid.UUID
) -> MergePlan:
    """Count rows with the same predicates ``contact_merge`` moves them by."""
    row = await conn.fetchrow(
        f"""
        SELECT
          (SELECT COUNT(*) FROM contact_identifiers s
             WHERE {_MOVABLE_IDENTIFIER_SQL})::int AS identifiers,
          (SELECT COUNT(*) FROM communications WHERE contact_id = $2)::int AS communications,
          (SELECT COUNT(*) FROM facts WHERE contact_id = $2)::int AS facts,
          (SELECT COUNT(*) FROM notes WHERE contact_id = $2)::int AS notes,
          (SELECT COUNT(*) FROM followups WHERE contact_id = $2)::int AS followups,
          (SELECT COUNT(*) FROM relationships WHERE contact_id = $2)::int AS relationships,
          (SELECT COUNT(*) FROM contact_tags s
             WHERE s.contact_id = $2
               AND NOT EXISTS (SELECT 1 FROM contact_tags t
                               WHERE t.contact_id = $1 AND t.tag_id = s.tag_id))::int AS tags,
          (SELECT COUNT(*) FROM contact_groups s
             WHERE s.contact_id = $2
               AND NOT EXISTS (SELECT 1 FROM contact_groups t
                               WHERE t.contact_id = $1 AND t.group_id = s.group_id))::int
             AS groups
        """,  # noqa: S608
        target_id,
        source_id,
    )
    return MergePlan(target_id=target_id, source_id=source_id, **dict(row))


async def merge_preview(
    pool: asyncpg.Pool, target_id: uuid.UUID, source_id: uuid.UUID
) -> MergePlan:
    """Report what merging *source_id* into *target_id* would move, without writing.

    Raises:
        ValidationError: If the two ids are equal.
        NotFoundError: If either contact is missing or deleted.
    """
    _check_ids(target_id, source_id)
    async with pool.acquire() as conn:
        async with conn.transaction(isolation="repeatable_read", readonly=True):
            await _require_live_contacts(conn, target_id, source_id, for_update=False)
            return await _count_plan(conn, target_id, source_id)


async def _move_identifiers(
    conn: asyncpg.Connection, target_id: uuid.UUID, source_id: uuid.UUID
) -> int:
    moved = await conn.execute(
        f"""
        UPDATE contact_identifiers s SET contact_id = $1
        WHERE {_MOVABLE_IDENTIFIER_SQL}
        """,  # noqa: S608
        target_id,
        source_id,
    )
    # Whatever is left duplicates an identifier the target already has.
    await conn.execute("DELETE FROM contact_identifiers WHERE contact_id = $1", source_id)
    return _affected(moved)


async def _move_relationships(
    conn: asyncpg.Connection, target_id: uuid.UUID, source_id: uuid.UUID
) -> int:
    await conn.execute(
        """
        UPDATE relationships s SET deleted_at = now(), updated_at = now()
        WHERE s.contact_id = $2 AND s.deleted_at IS NULL
          AND EXISTS (
            SELECT 1 FROM relationships t
            WHERE t.contact_id = $1 AND t.deleted_at IS NULL
              AND lower(t.label) = lower(s.label)
              AND lower(t.person_name) = lower(s.person_name)
          )
        """,
        target_id,
        source_id,
    )
    moved = await conn.execute(
        "UPDATE relationships SET contact_id = $1, updated_at = now() WHERE contact_id = $2",
        target_id,
        source_id,
    )
    # A link from the target to the source would become a self-link.
    await conn.execute(
        """
        UPDATE relationships
        SET linked_contact_id = CASE WHEN contact_id = $1 THEN NULL ELSE $1 END,
            updated_at = now()
        WHERE linked_contact_id = $2
        """,
        target_id,
        source_id,
    )
    await conn.execute(
        "UPDATE contact_relationships SET contact_a_id = $1 WHERE contact_a_id = $2",
        target_id,
        source_id,
    )
    await conn.execute(
        "UPDATE contact_relationships SET contact_b_id = $1 WHERE contact_b_id = $2",
        target_id,
        source_id,
    )
    # A source relationship that already linked to the target now points at itself.
    await conn.execute(
        """
        UPDATE relationships SET linked_contact_id = NULL, updated_at = now()
        WHERE contact_id = $1 AND linked_contact_id = $1
        """,
        target_id,
    )
    await conn.execute("DELETE FROM contact_relationships WHERE contact_a_id = contact_b_id")
    # Edges are unordered; keep the oldest row per pair.
    await conn.execute(
        """
        DELETE FROM contact_relationships r
        USING contact_relationships k
        WHERE $1 IN (r.contact_a_id, r.contact_b_id)
          AND least(r.contact_a_id, r.contact_b_id) = least(k.contact_a_id, k.contact_b_id)
          AND greatest(r.contact_a_id, r.contact_b_id)
              = greatest(k.contact_a_id, k.contact_b_id)
          AND (r.created_at, r.id) > (k.created_at, k.id)
        """,
        target_id,
    )
    return _affected(moved)


async def _move_memberships(
    conn: asyncpg.Connection, target_id: uuid.UUID, source_id: uuid.UUID
) -> tuple[int, int]:
    tags = await conn.execute(
        """
        INSERT INTO contact_tags (contact_id, tag_id)
        SELECT $1, tag_id FROM contact_tags WHERE contact_id = $2
        ON CONFLICT DO NOTHING
        """,
        target_id,
        source_id,
    )
    await conn.execute("DELETE FROM contact_tags WHERE contact_id = $1", source_id)
    groups = await conn.execute(
        """
        INSERT INTO contact_groups (contact_id, group_id)
        SELECT $1, group_id FROM contact_groups WHERE contact_id = $2
        ON CONFLICT DO NOTHING
        """,
        target_id,
        source_id,
    )
    await conn.execute("DELETE FROM contact_groups WHERE contact_id = $1", source_id)
    return _affected(tags), _affected(groups)


async def contact_merge(
    pool: asyncpg.Pool, target_id: uuid.UUID, source_id: uuid.UUID
) -> dict[str, Any]:
    """Merge *source_id* into *target_id*.

    The target survives; the source is soft-deleted.  Returns the updated
    target contact and the counts of what moved.

    Raises:
        ValidationError: If the two ids are equal.
        NotFoundError: If either contact is missing or deleted.
    """
    _check_ids(target_id, source_id)

    async with pool.acquire() as conn:
        async with conn.transaction():
            contacts = await _require_live_contacts(conn, target_id, source_id, for_update=True)
            source = contacts[source_id]

            moved: dict[str, int] = {}
            moved["identifiers"] = await _move_identifiers(conn, target_id, source_id)
            for table, fk_col in _REPOINT_TABLES:
                status = await conn.execute(
                    f"UPDATE {table} SET {fk_col} = $1 WHERE {fk_col} = $2",  # noqa: S608
                    target_id,
                    source_id,
                )
                moved[table] = _affected(status)
            moved["relationships"] = await _move_relationships(conn, target_id, source_id)
            moved["tags"], moved["groups"] = await _move_memberships(conn, target_id, source_id)

            await conn.execute(
                "UPDATE contacts SET deleted_at = now(), updated_at = now() WHERE id = $1",
                source_id,
            )
            target = dict(
                await conn.fetchrow(
                    "UPDATE contacts SET updated_at = now() WHERE id = $1 RETURNING *",
                    target_id,
                )
            )
            await write_audit_entry(
                conn,
                "contact",
                target_id,
                "update",
                old_value={"merged_contact_id": source_id, "display_name": source["display_name"]},
                new_value={"merged_from": source_id, "moved": moved},
            )

    logger.info("Merged contact %s into %s: %s", source_id, target_id, moved)
    return {"contact": target, "merged_from": source_id, "moved": moved}
