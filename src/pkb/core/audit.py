"""Audit log helper.

Audit rows are written on the same connection (and therefore inside the same
transaction) as the mutation they describe, so a rolled-back operation never
leaves an audit entry behind.  Failures propagate to the caller.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Literal

import asyncpg

logger = logging.getLogger(__name__)

AuditAction = Literal["create", "update", "delete"]


def _jsonable(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


async def write_audit_entry(
    conn: asyncpg.Connection,
    entity_type: str,
    entity_id: uuid.UUID,
    action: AuditAction,
    old_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
) -> None:
    """Insert an ``audit_log`` row.

    Parameters
    ----------
    conn:
        Connection holding the caller's open transaction.
    entity_type:
        Kind of entity mutated (``"group"``, ``"contact"`` ...).
    entity_id:
        Id of the mutated entity.
    action:
        ``"create"``, ``"update"`` or ``"delete"``.
    old_value / new_value:
        Optional JSON-serializable before/after payloads.
    """
    await conn.execute(
        """
        INSERT INTO audit_log (entity_type, entity_id, action, old_value, new_value)
        VALUES ($1, $2, $3, $4::jsonb, $5::jsonb)
        """,
        entity_type,
        entity_id,
        action,
        _jsonable(old_value),
        _jsonable(new_value),
    )
    logger.debug("Audit entry written: %s %s %s", entity_type, entity_id, action)
