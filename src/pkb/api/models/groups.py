"""Pydantic models for the group endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class Group(BaseModel):
    id: UUID
    name: str
    parent_id: UUID | None = None
    followup_days: int | None = None
    contact_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GroupNode(Group):
    """A group with its (name-sorted) children, as returned by the tree view."""

    children: list[GroupNode] = Field(default_factory=list)


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    parent_id: UUID | None = None
    followup_days: int | None = Field(default=None, ge=1, le=365)


class GroupUpdate(BaseModel):
    """Partial update; send ``"parent_id": null`` to move a group to the root."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    parent_id: UUID | None = None
    followup_days: int | None = Field(default=None, ge=1, le=365)


class GroupMembership(BaseModel):
    group_id: UUID
    contact_id: UUID
