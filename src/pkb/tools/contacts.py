"""Contact snapshots: read-only views of a contact and its joined dimensions.

Snapshots are what the smart-list engine and the duplicate detector work on.
They are loaded in id-ordered batches so that callers can scan the whole
contact population without holding every row in memory.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import asyncpg

from pkb.errors import NotFoundError

logger = logging.getLogger(__name__)

_PHONE_STRIP = re.compile(r"[^0-9+]")

_CONTACT_COLUMNS = (
    "id, display_name, starred, manual_importance, engagement_score, created_at, updated_at"
)


def normalize_identifier(type: str, value: str) -> str:
    """Normalize an email/phone identifier for comparison and storage."""
    if type == "email":
        return value.strip().lower()
    if type == "phone":
        stripped = value.strip()
        digits = _PHONE_STRIP.sub("", stripped)
        # Only a leading '+' is meaningful.
        if digits.startswith("+"):
            return "+" + digits[1:].replace("+", "")
        return digits.replace("+", "")
    return value.strip()


@dataclass(frozen=True)
class ContactSnapshot:
    """Immutable snapshot of one contact for rule evaluation and dedup."""

    id: uuid.UUID
    display_name: str
    starred: bool = False
    manual_importance: int | None = None
    engagement_score: float | None = None
    emails: tuple[str, ...] = ()
    phones: tuple[str, ...] = ()
    tag_ids: frozenset[str] = frozenset()
    group_ids: frozenset[str] = frozenset()
    facts: tuple[tuple[str, str], ...] = ()
    communication_sources: frozenset[str] = frozenset()
    last_contact_at: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def fact_values(self, fact_type: str) -> tuple[str, ...]:
        """Return the values of every live fact of *fact_type*."""
        return tuple(value for kind, value in self.facts if kind == fact_type)

    def to_dict(self) -> dict[str, Any]:
        """Public representation used in API responses."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "starred": self.starred,
            "manual_importance": self.manual_importance,
            "engagement_score": self.engagement_score,
            "emails": list(self.emails),
            "phones": list(self.phones),
            **self.extra,
        }


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


async def _load_dimensions(
    conn: asyncpg.Pool | asyncpg.Connection, ids: Sequence[uuid.UUID]
) -> dict[str, dict[uuid.UUID, Any]]:
    """Fetch identifiers, tags, groups, facts and communication stats for *ids*."""
    dims: dict[str, dict[uuid.UUID, Any]] = {
        "emails": defaultdict(list),
        "phones": defaultdict(list),
        "tags": defaultdict(set),
        "groups": defaultdict(set),
        "facts": defaultdict(list),
        "sources": {},
        "last_contact_at": {},
    }
    if not ids:
        return dims
    id_list = list(ids)

    for row in await conn.fetch(
        """
        SELECT contact_id, type, value FROM contact_identifiers
        WHERE contact_id = ANY($1::uuid[]) AND type IN ('email', 'phone')
        ORDER BY created_at, value
        """,
        id_list,
    ):
        key = "emails" if row["type"] == "email" else "phones"
        dims[key][row["contact_id"]].append(normalize_identifier(row["type"], row["value"]))

    for row in await conn.fetch(
        "SELECT contact_id, tag_id FROM contact_tags WHERE contact_id = ANY($1::uuid[])",
        id_list,
    ):
        dims["tags"][row["contact_id"]].add(str(row["tag_id"]))

    for row in await conn.fetch(
        "SELECT contact_id, group_id FROM contact_groups WHERE contact_id = ANY($1::uuid[])",
        id_list,
    ):
        dims["groups"][row["contact_id"]].add(str(row["group_id"]))

    for row in await conn.fetch(
        """
        SELECT contact_id, fact_type, value FROM facts
        WHERE contact_id = ANY($1::uuid[]) AND deleted_at IS NULL AND fact_type IS NOT NULL
        ORDER BY created_at
        """,
        id_list,
    ):
        dims["facts"][row["contact_id"]].append((row["fact_type"], row["value"]))

    for row in await conn.fetch(
        """
        SELECT contact_id,
               MAX(timestamp) AS last_contact_at,
               array_agg(DISTINCT source) AS sources
        FROM communications
        WHERE contact_id = ANY($1::uuid[])
        GROUP BY contact_id
        """,
        id_list,
    ):
        dims["last_contact_at"][row["contact_id"]] = row["last_contact_at"]
        dims["sources"][row["contact_id"]] = frozenset(row["sources"] or ())

    return dims


def _build_snapshots(
    rows: Sequence[Any], dims: dict[str, dict[uuid.UUID, Any]]
) -> list[ContactSnapshot]:
    snapshots = []
    for row in rows:
        cid = row["id"]
        snapshots.append(
            ContactSnapshot(
                id=cid,
                display_name=row["display_name"] or "",
                starred=bool(row["starred"]),
                manual_importance=row["manual_importance"],
                engagement_score=_as_float(row["engagement_score"]),
                emails=tuple(dims["emails"].get(cid, ())),
                phones=tuple(dims["phones"].get(cid, ())),
                tag_ids=frozenset(dims["tags"].get(cid, ())),
                group_ids=frozenset(dims["groups"].get(cid, ())),
                facts=tuple(dims["facts"].get(cid, ())),
                communication_sources=dims["sources"].get(cid, frozenset()),
                last_contact_at=dims["last_contact_at"].get(cid),
                extra={"created_at": row["created_at"], "updated_at": row["updated_at"]},
            )
        )
    return snapshots


async def load_contact_batch(
    conn: asyncpg.Pool | asyncpg.Connection,
    *,
    after_id: uuid.UUID | None = None,
    limit: int = 500,
) -> list[ContactSnapshot]:
    """Load up to *limit* live contacts with ``id > after_id``, ordered by id."""
    rows = await conn.fetch(
        f"""
        SELECT {_CONTACT_COLUMNS} FROM contacts
        WHERE deleted_at IS NULL AND ($1::uuid IS NULL OR id > $1::uuid)
        ORDER BY id
        LIMIT $2
        """,  # noqa: S608
        after_id,
        limit,
    )
    dims = await _load_dimensions(conn, [row["id"] for row in rows])
    return _build_snapshots(rows, dims)


async def iter_contact_snapshots(
    conn: asyncpg.Pool | asyncpg.Connection,
    *,
    after_id: uuid.UUID | None = None,
    batch_size: int = 500,
) -> AsyncIterator[ContactSnapshot]:
    """Yield every live contact after *after_id* in id order, batch by batch."""
    cursor = after_id
    while True:
        batch = await load_contact_batch(conn, after_id=cursor, limit=batch_size)
        if not batch:
            return
        for snapshot in batch:
            yield snapshot
        if len(batch) < batch_size:
            return
        cursor = batch[-1].id


async def load_all_contact_snapshots(
    conn: asyncpg.Pool | asyncpg.Connection, *, batch_size: int = 500
) -> list[ContactSnapshot]:
    """Materialize every live contact snapshot."""
    return [s async for s in iter_contact_snapshots(conn, batch_size=batch_size)]


async def contact_get(pool: asyncpg.Pool, contact_id: uuid.UUID) -> dict[str, Any]:
    """Get a live contact row by id."""
    row = await pool.fetchrow(
        "SELECT * FROM contacts WHERE id = $1 AND deleted_at IS NULL", contact_id
    )
    if row is None:
        raise NotFoundError(f"Contact {contact_id} not found")
    return dict(row)


async def contact_exists(conn: asyncpg.Pool | asyncpg.Connection, contact_id: uuid.UUID) -> bool:
    """True when a live (not soft-deleted) contact with *contact_id* exists."""
    return bool(
        await conn.fetchval(
            "SELECT EXISTS (SELECT 1 FROM contacts WHERE id = $1 AND deleted_at IS NULL)",
            contact_id,
        )
    )
