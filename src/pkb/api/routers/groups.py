"""Group endpoints: hierarchy CRUD and contact membership."""

from __future__ import annotations

import logging
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, Response

from pkb.api.deps import get_pool
from pkb.api.models import (
    ApiResponse,
    Group,
    GroupCreate,
    GroupMembership,
    GroupNode,
    GroupUpdate,
)
from pkb.tools import groups as group_tools

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.get("", response_model=ApiResponse[list[GroupNode]] | ApiResponse[list[Group]])
async def list_groups(
    flat: bool = Query(False, description="Return a flat list instead of a tree"),
    pool: asyncpg.Pool = Depends(get_pool),
):
    """List groups as a name-sorted tree (or flat with ``?flat=true``)."""
    if flat:
        rows = await group_tools.group_list_flat(pool)
        return ApiResponse[list[Group]](data=[Group.model_validate(r) for r in rows])
    tree = await group_tools.group_list(pool)
    return ApiResponse[list[GroupNode]](data=[GroupNode.model_validate(n) for n in tree])


@router.post("", response_model=ApiResponse[Group], status_code=201)
async def create_group(
    body: GroupCreate,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[Group]:
    group = await group_tools.group_create(
        pool, body.name, parent_id=body.parent_id, followup_days=body.followup_days
    )
    return ApiResponse[Group](data=Group.model_validate(group))


@router.get("/{group_id}", response_model=ApiResponse[Group])
async def get_group(group_id: UUID, pool: asyncpg.Pool = Depends(get_pool)) -> ApiResponse[Group]:
    group = await group_tools.group_get(pool, group_id)
    return ApiResponse[Group](data=Group.model_validate(group))


@router.patch("/{group_id}", response_model=ApiResponse[Group])
async def update_group(
    group_id: UUID,
    body: GroupUpdate,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[Group]:
    """Partially update a group; only fields present in the body are changed."""
    fields = body.model_dump(exclude_unset=True)
    group = await group_tools.group_update(pool, group_id, **fields)
    return ApiResponse[Group](data=Group.model_validate(group))


@router.delete("/{group_id}", status_code=204)
async def delete_group(group_id: UUID, pool: asyncpg.Pool = Depends(get_pool)) -> Response:
    await group_tools.group_delete(pool, group_id)
    return Response(status_code=204)


@router.post(
    "/{group_id}/contacts/{contact_id}",
    response_model=ApiResponse[GroupMembership],
    status_code=201,
)
async def add_contact_to_group(
    group_id: UUID,
    contact_id: UUID,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[GroupMembership]:
    membership = await group_tools.group_add_contact(pool, group_id, contact_id)
    return ApiResponse[GroupMembership](data=GroupMembership.model_validate(membership))


@router.delete("/{group_id}/contacts/{contact_id}", status_code=204)
async def remove_contact_from_group(
    group_id: UUID,
    contact_id: UUID,
    pool: asyncpg.Pool = Depends(get_pool),
) -> Response:
    await group_tools.group_remove_contact(pool, group_id, contact_id)
    return Response(status_code=204)
