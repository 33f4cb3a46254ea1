"""Shared Pydantic response/request models for the pkb API.

Provides the generic ``ApiResponse`` wrapper and the error envelope used by
every endpoint, and re-exports the per-resource models.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Base response wrappers
# ---------------------------------------------------------------------------


class ApiMeta(BaseModel):
    """Extensible metadata bag attached to every API response."""

    model_config = {"extra": "allow"}


class ApiResponse(BaseModel, Generic[T]):
    """Generic API response wrapper.

    All successful responses follow ``{"data": T, "meta": {...}}``.
    """

    data: T
    meta: ApiMeta = Field(default_factory=ApiMeta)


class ErrorDetail(BaseModel):
    """Structured error payload."""

    code: str
    message: str
    details: dict | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail


from pkb.api.models.contacts import (  # noqa: E402
    ContactSummary,
    DuplicateCandidate,
    MergePreview,
    MergeRequest,
    MergeResult,
)
from pkb.api.models.groups import (  # noqa: E402
    Group,
    GroupCreate,
    GroupMembership,
    GroupNode,
    GroupUpdate,
)
from pkb.api.models.smartlists import (  # noqa: E402
    RuleCondition,
    SmartList,
    SmartListCreate,
    SmartListRulesModel,
    SmartListUpdate,
)
from pkb.api.models.tags import Tag, TagCreate, TagMembership, TagUpdate  # noqa: E402

__all__ = [
    "ApiMeta",
    "ApiResponse",
    "ContactSummary",
    "DuplicateCandidate",
    "ErrorDetail",
    "ErrorResponse",
    "Group",
    "GroupCreate",
    "GroupMembership",
    "GroupNode",
    "GroupUpdate",
    "MergePreview",
    "MergeRequest",
    "MergeResult",
    "RuleCondition",
    "SmartList",
    "SmartListCreate",
    "SmartListRulesModel",
    "SmartListUpdate",
    "Tag",
    "TagCreate",
    "TagMembership",
    "TagUpdate",
]
