"""Tag endpoints."""

from __future__ import annotations

from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Response

from pkb.api.deps import get_pool
from pkb.api.models import ApiResponse, Tag, TagCreate, TagMembership, TagUpdate
from pkb.tools import tags as tag_tools

router = APIRouter(prefix="/api/tags", tags=["tags"])


@router.get("", response_model=ApiResponse[list[Tag]])
async def list_tags(pool: asyncpg.Pool = Depends(get_pool)) -> ApiResponse[list[Tag]]:
    rows = await tag_tools.tag_list(pool)
    return ApiResponse[list[Tag]](data=[Tag.model_validate(r) for r in rows])


@router.post("", response_model=ApiResponse[Tag], status_code=201)
async def create_tag(body: TagCreate, pool: asyncpg.Pool = Depends(get_pool)) -> ApiResponse[Tag]:
    tag = await tag_tools.tag_create(
        pool, body.name, color=body.color, followup_days=body.followup_days
    )
    return ApiResponse[Tag](data=Tag.model_validate(tag))


@router.get("/{tag_id}", response_model=ApiResponse[Tag])
async def get_tag(tag_id: UUID, pool: asyncpg.Pool = Depends(get_pool)) -> ApiResponse[Tag]:
    return ApiResponse[Tag](data=Tag.model_validate(await tag_tools.tag_get(pool, tag_id)))


@router.patch("/{tag_id}", response_model=ApiResponse[Tag])
async def update_tag(
    tag_id: UUID, body: TagUpdate, pool: asyncpg.Pool = Depends(get_pool)
) -> ApiResponse[Tag]:
    tag = await tag_tools.tag_update(pool, tag_id, **body.model_dump(exclude_unset=True))
    return ApiResponse[Tag](data=Tag.model_validate(tag))


@router.delete("/{tag_id}", status_code=204)
async def delete_tag(tag_id: UUID, pool: asyncpg.Pool = Depends(get_pool)) -> Response:
    await tag_tools.tag_delete(pool, tag_id)
    return Response(status_code=204)


@router.post(
    "/{tag_id}/contacts/{contact_id}", response_model=ApiResponse[TagMembership], status_code=201
)
async def add_tag_to_contact(
    tag_id: UUID, contact_id: UUID, pool: asyncpg.Pool = Depends(get_pool)
) -> ApiResponse[TagMembership]:
    membership = await tag_tools.tag_add_contact(pool, tag_id, contact_id)
    return ApiResponse[TagMembership](data=TagMembership.model_validate(membership))


@router.delete("/{tag_id}/contacts/{contact_id}", status_code=204)
async def remove_tag_from_contact(
    tag_id: UUID, contact_id: UUID, pool: asyncpg.Pool = Depends(get_pool)
) -> Response:
    await tag_tools.tag_remove_contact(pool, tag_id, contact_id)
    return Response(status_code=204)
