"""Pydantic models for the tag endpoints."""

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

_COLOR = r"^#[0-9a-fA-F]{6}$"


class Tag(BaseModel):
    id: UUID
    name: str
    color: str | None = None
    followup_days: int | None = None
    contact_count: int | None = None


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str | None = Field(default=None, pattern=_COLOR)
    followup_days: int | None = Field(default=None, ge=1, le=365)


class TagUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=50)
    color: str | None = Field(default=None, pattern=_COLOR)
    followup_days: int | None = Field(default=None, ge=1, le=365)


class TagMembership(BaseModel):
    tag_id: UUID
    contact_id: UUID
