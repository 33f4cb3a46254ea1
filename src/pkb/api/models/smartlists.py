"""Pydantic models for the smart list endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

OperatorName = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "is_empty",
    "is_not_empty",
]


class RuleCondition(BaseModel):
    field: str = Field(min_length=1)
    operator: OperatorName
    value: Any = None


class SmartListRulesModel(BaseModel):
    operator: Literal["AND", "OR"]
    conditions: list[RuleCondition] = Field(min_length=1)


class SmartList(BaseModel):
    id: UUID
    name: str
    rules: dict[str, Any]
    contact_count: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SmartListCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    rules: SmartListRulesModel


class SmartListUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    rules: SmartListRulesModel | None = None
