"""Contact endpoints: duplicate candidates, merges and memberships."""

from __future__ import annotations

import logging
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query

from pkb.api.deps import get_pool
from pkb.api.models import (
    ApiMeta,
    ApiResponse,
    DuplicateCandidate,
    Group,
    MergePreview,
    MergeRequest,
    MergeResult,
    Tag,
)
from pkb.tools import duplicates, merge
from pkb.tools.groups import contact_groups
from pkb.tools.tags import contact_tags

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.get("/duplicates", response_model=ApiResponse[list[DuplicateCandidate]])
async def list_duplicates(
    threshold: float = Query(
        duplicates.NAME_SIMILARITY_THRESHOLD,
        ge=0.5,
        le=1.0,
        description="Minimum name similarity for a similar_name pair",
    ),
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[list[DuplicateCandidate]]:
    """List likely-duplicate contact pairs, strongest first."""
    pairs = await duplicates.find_duplicates(pool, threshold=threshold)
    return ApiResponse[list[DuplicateCandidate]](
        data=[DuplicateCandidate.model_validate(p) for p in pairs],
        meta=ApiMeta(total=len(pairs)),
    )


@router.get("/{contact_id}/merge-preview/{source_id}", response_model=ApiResponse[MergePreview])
async def preview_merge(
    contact_id: UUID,
    source_id: UUID,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[MergePreview]:
    plan = await merge.merge_preview(pool, contact_id, source_id)
    return ApiResponse[MergePreview](data=MergePreview.model_validate(plan.to_dict()))


@router.post("/{contact_id}/merge", response_model=ApiResponse[MergeResult])
async def merge_contact(
    contact_id: UUID,
    body: MergeRequest,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[MergeResult]:
    """Merge ``body.source_id`` into ``contact_id``; the source is soft-deleted."""
    result = await merge.contact_merge(pool, contact_id, body.source_id)
    return ApiResponse[MergeResult](data=MergeResult.model_validate(result))


@router.get("/{contact_id}/groups", response_model=ApiResponse[list[Group]])
async def list_contact_groups(
    contact_id: UUID, pool: asyncpg.Pool = Depends(get_pool)
) -> ApiResponse[list[Group]]:
    rows = await contact_groups(pool, contact_id)
    return ApiResponse[list[Group]](data=[Group.model_validate(r) for r in rows])


@router.get("/{contact_id}/tags", response_model=ApiResponse[list[Tag]])
async def list_contact_tags(
    contact_id: UUID, pool: asyncpg.Pool = Depends(get_pool)
) -> ApiResponse[list[Tag]]:
    rows = await contact_tags(pool, contact_id)
    return ApiResponse[list[Tag]](data=[Tag.model_validate(r) for r in rows])
