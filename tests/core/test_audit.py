"""Tests for pkb.core.audit."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from pkb.core.audit import write_audit_entry

pytestmark = pytest.mark.unit


async def test_writes_json_payloads():
    conn = MagicMock()
    conn.execute = AsyncMock()
    entity_id = uuid.uuid4()
    parent_id = uuid.uuid4()
    when = datetime(2026, 1, 1, tzinfo=UTC)

    await write_audit_entry(
        conn,
        "group",
        entity_id,
        "update",
        old_value={"parent_id": None},
        new_value={"parent_id": parent_id, "updated_at": when},
    )

    sql, *args = conn.execute.await_args.args
    assert "INSERT INTO audit_log" in sql
    assert args[:3] == ["group", entity_id, "update"]
    assert json.loads(args[3]) == {"parent_id": None}
    assert json.loads(args[4]) == {"parent_id": str(parent_id), "updated_at": str(when)}


async def test_missing_values_stay_null():
    conn = MagicMock()
    conn.execute = AsyncMock()
    await write_audit_entry(conn, "contact", uuid.uuid4(), "delete")
    assert conn.execute.await_args.args[4:] == (None, None)


async def test_failure_propagates():
    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=ConnectionError("gone"))
    with pytest.raises(ConnectionError):
        await write_audit_entry(conn, "contact", uuid.uuid4(), "create")
