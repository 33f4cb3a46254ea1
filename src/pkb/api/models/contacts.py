"""Pydantic models for contact-level endpoints (duplicates and merges)."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ContactSummary(BaseModel):
    """Public fields of a contact as listed by smart lists and dedup."""

    model_config = {"extra": "allow"}

    id: UUID
    display_name: str
    starred: bool = False
    manual_importance: int | None = None
    engagement_score: float | None = None
    emails: list[str] = Field(default_factory=list)
    phones: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DuplicateCandidate(BaseModel):
    contact_a: UUID
    contact_b: UUID
    reason: str
    confidence: float = Field(ge=0.0, le=1.0)
    contact_a_detail: ContactSummary | None = None
    contact_b_detail: ContactSummary | None = None


class MergeRequest(BaseModel):
    source_id: UUID


class MergePreview(BaseModel):
    target_id: UUID
    source_id: UUID
    identifiers: int
    communications: int
    facts: int
    notes: int
    followups: int
    relationships: int
    tags: int
    groups: int


class MergeResult(BaseModel):
    contact: ContactSummary
    merged_from: UUID
    moved: dict[str, int]
