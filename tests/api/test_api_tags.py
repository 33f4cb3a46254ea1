"""Tests for the /api/tags endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from pkb.errors import ConflictError

pytestmark = pytest.mark.unit


def test_create_tag(client):
    tag = {"id": uuid4(), "name": "vip", "color": "#ff0000"}
    with patch("pkb.tools.tags.tag_create", AsyncMock(return_value=tag)):
        resp = client.post("/api/tags", json={"name": "vip", "color": "#ff0000"})
    assert resp.status_code == 201
    assert resp.json()["data"]["color"] == "#ff0000"


def test_duplicate_tag_is_conflict(client):
    with patch("pkb.tools.tags.tag_create", AsyncMock(side_effect=ConflictError("exists"))):
        resp = client.post("/api/tags", json={"name": "vip"})
    assert resp.status_code == 409


def test_bad_color_is_400(client):
    assert client.post("/api/tags", json={"name": "vip", "color": "red"}).status_code == 400


def test_list_tags(client):
    rows = [{"id": uuid4(), "name": "vip", "contact_count": 3}]
    with patch("pkb.tools.tags.tag_list", AsyncMock(return_value=rows)):
        resp = client.get("/api/tags")
    assert resp.json()["data"][0]["contact_count"] == 3


def test_tag_membership_round_trip(client):
    tid, cid = uuid4(), uuid4()
    with patch(
        "pkb.tools.tags.tag_add_contact",
        AsyncMock(return_value={"tag_id": tid, "contact_id": cid}),
    ):
        assert client.post(f"/api/tags/{tid}/contacts/{cid}").status_code == 201
    with patch("pkb.tools.tags.tag_remove_contact", AsyncMock(return_value=None)):
        assert client.delete(f"/api/tags/{tid}/contacts/{cid}").status_code == 204
