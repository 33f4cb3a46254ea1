"""Smart lists: saved rule sets whose membership is computed on every read.

Membership is never persisted.  Reading a list scans the live contact
population in id order, batch by batch, and evaluates the rules against each
snapshot. The cursor carries the last returned id and the time the first page
was evaluated at, so time-relative rules judge every page of one listing
against the same instant.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from datetime import datetime
from typing import Any

import asyncpg

from pkb.config import SmartListConfig
from pkb.errors import NotFoundError, ValidationError
from pkb.tools.contacts import ContactSnapshot, iter_contact_snapshots
from pkb.tools.rules import FieldResolver, SmartListRules, evaluate, parse_rules

logger = logging.getLogger(__name__)

_DEFAULTS = SmartListConfig()
_CURSOR_PREFIX = "c2:"


def encode_cursor(contact_id: uuid.UUID, as_of: datetime) -> str:
    """Encode the last returned contact id and the scan's evaluation time."""
    raw = f"{_CURSOR_PREFIX}{contact_id}|{as_of.isoformat()}".encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[uuid.UUID, datetime]:
    """Decode a cursor produced by :func:`encode_cursor`.

    Raises:
        ValidationError: If the token is malformed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        text = base64.urlsafe_b64decode(padded.encode()).decode()
        if not text.startswith(_CURSOR_PREFIX):
            raise ValueError(text)
        raw_id, raw_as_of = text[len(_CURSOR_PREFIX) :].split("|", 1)
        as_of = datetime.fromisoformat(raw_as_of)
        if as_of.tzinfo is None:
            raise ValueError(raw_as_of)
        return uuid.UUID(raw_id), as_of
    except (ValueError, binascii.Error, UnicodeDecodeError):
        raise ValidationError("Invalid cursor") from None


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Smart list name must be a non-empty string")
    name = name.strip()
    if len(name) > 100:
        raise ValidationError("Smart list name must be at most 100 characters")
    return name


def _validate_rules(raw: Any) -> SmartListRules:
    return parse_rules(raw, resolver=FieldResolver())


def _parse_row(row: asyncpg.Record) -> dict[str, Any]:
    data = dict(row)
    rules = data.get("rules")
    if isinstance(rules, str):
        data["rules"] = json.loads(rules)
    return data


async def smart_list_create(pool: asyncpg.Pool, name: str, rules: Any) -> dict[str, Any]:
    """Create a smart list after validating its rules."""
    name = _validate_name(name)
    parsed = _validate_rules(rules)
    row = await pool.fetchrow(
        "INSERT INTO smart_lists (name, rules) VALUES ($1, $2::jsonb) RETURNING *",
        name,
        json.dumps(parsed.to_dict()),
    )
    logger.info("Created smart list %s", row["id"])
    return _parse_row(row)


async def smart_list_get(pool: asyncpg.Pool, list_id: uuid.UUID) -> dict[str, Any]:
    row = await pool.fetchrow("SELECT * FROM smart_lists WHERE id = $1", list_id)
    if row is None:
        raise NotFoundError(f"Smart list {list_id} not found")
    return _parse_row(row)


async def smart_list_list(
    pool: asyncpg.Pool, *, batch_size: int = _DEFAULTS.scan_batch_size
) -> list[dict[str, Any]]:
    """List smart lists, each with its current ``contact_count``.

    The contact population is scanned once and every list is evaluated
    against each snapshot.
    """
    lists = [_parse_row(row) for row in await pool.fetch("SELECT * FROM smart_lists ORDER BY name")]
    if not lists:
        return []

    resolver = FieldResolver()
    parsed: list[SmartListRules | None] = []
    for item in lists:
        try:
            parsed.append(parse_rules(item["rules"]))
        except ValidationError:
            logger.warning("Smart list %s has invalid stored rules; counting 0", item["id"])
            parsed.append(None)

    counts = [0] * len(lists)
    async for contact in iter_contact_snapshots(pool, batch_size=batch_size):
        for index, rules in enumerate(parsed):
            if rules is not None and evaluate(rules, contact, resolver):
                counts[index] += 1

    for item, count in zip(lists, counts, strict=True):
        item["contact_count"] = count
    return lists


async def smart_list_update(
    pool: asyncpg.Pool,
    list_id: uuid.UUID,
    *,
    name: str | None = None,
    rules: Any = None,
) -> dict[str, Any]:
    """Rename a smart list and/or replace its rules."""
    updates: dict[str, Any] = {}
    if name is not None:
        updates["name"] = _validate_name(name)
    if rules is not None:
        updates["rules"] = json.dumps(_validate_rules(rules).to_dict())
    if not updates:
        raise ValidationError("No fields to update")

    columns = list(updates)
    assignments = ", ".join(
        f"{col} = ${i}::jsonb" if col == "rules" else f"{col} = ${i}"
        for i, col in enumerate(columns, start=2)
    )
    row = await pool.fetchrow(
        f"UPDATE smart_lists SET {assignments}, updated_at = now() "  # noqa: S608
        "WHERE id = $1 RETURNING *",
        list_id,
        *(updates[col] for col in columns),
    )
    if row is None:
        raise NotFoundError(f"Smart list {list_id} not found")
    return _parse_row(row)


async def smart_list_delete(pool: asyncpg.Pool, list_id: uuid.UUID) -> None:
    result = await pool.execute("DELETE FROM smart_lists WHERE id = $1", list_id)
    if result == "DELETE 0":
        raise NotFoundError(f"Smart list {list_id} not found")
    logger.info("Deleted smart list %s", list_id)


async def get_smart_list_contacts(
    pool: asyncpg.Pool,
    list_id: uuid.UUID,
    cursor: str | None = None,
    limit: int | None = None,
    *,
    config: SmartListConfig | None = None,
) -> tuple[list[dict[str, Any]], str | None]:
    """Return one page of contacts matching a smart list, plus the next cursor.

    ``next_cursor`` is ``None`` when the page is the last one.

    Raises:
        NotFoundError: If the list does not exist.
        ValidationError: If *cursor* is malformed.
    """
    config = config or _DEFAULTS
    page_size = config.clamp_limit(limit)
    after_id, as_of = decode_cursor(cursor) if cursor else (None, None)

    smart_list = await smart_list_get(pool, list_id)
    rules = parse_rules(smart_list["rules"])
    resolver = FieldResolver(now=as_of)

    matches: list[ContactSnapshot] = []
    async for contact in iter_contact_snapshots(
        pool, after_id=after_id, batch_size=config.scan_batch_size
    ):
        if evaluate(rules, contact, resolver):
            matches.append(contact)
            if len(matches) > page_size:
                break

    has_more = len(matches) > page_size
    page = matches[:page_size]
    next_cursor = encode_cursor(page[-1].id, resolver.now) if has_more else None
    return [contact.to_dict() for contact in page], next_cursor
