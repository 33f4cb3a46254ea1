"""Smart list endpoints: saved rule sets and their computed membership."""

from __future__ import annotations

import logging
from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, Response

from pkb.api.deps import get_config, get_pool
from pkb.api.models import (
    ApiMeta,
    ApiResponse,
    ContactSummary,
    SmartList,
    SmartListCreate,
    SmartListUpdate,
)
from pkb.config import PkbConfig
from pkb.tools import smartlists as smart_list_tools

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/smart-lists", tags=["smart-lists"])


@router.get("", response_model=ApiResponse[list[SmartList]])
async def list_smart_lists(
    pool: asyncpg.Pool = Depends(get_pool),
    config: PkbConfig = Depends(get_config),
) -> ApiResponse[list[SmartList]]:
    """List smart lists with their current contact counts."""
    lists = await smart_list_tools.smart_list_list(
        pool, batch_size=config.smart_lists.scan_batch_size
    )
    return ApiResponse[list[SmartList]](data=[SmartList.model_validate(item) for item in lists])


@router.post("", response_model=ApiResponse[SmartList], status_code=201)
async def create_smart_list(
    body: SmartListCreate,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[SmartList]:
    created = await smart_list_tools.smart_list_create(
        pool, body.name, body.rules.model_dump(exclude_none=False)
    )
    return ApiResponse[SmartList](data=SmartList.model_validate(created))


@router.get("/{list_id}", response_model=ApiResponse[SmartList])
async def get_smart_list(
    list_id: UUID, pool: asyncpg.Pool = Depends(get_pool)
) -> ApiResponse[SmartList]:
    smart_list = await smart_list_tools.smart_list_get(pool, list_id)
    return ApiResponse[SmartList](data=SmartList.model_validate(smart_list))


@router.patch("/{list_id}", response_model=ApiResponse[SmartList])
async def update_smart_list(
    list_id: UUID,
    body: SmartListUpdate,
    pool: asyncpg.Pool = Depends(get_pool),
) -> ApiResponse[SmartList]:
    updated = await smart_list_tools.smart_list_update(
        pool,
        list_id,
        name=body.name,
        rules=body.rules.model_dump() if body.rules is not None else None,
    )
    return ApiResponse[SmartList](data=SmartList.model_validate(updated))


@router.delete("/{list_id}", status_code=204)
async def delete_smart_list(list_id: UUID, pool: asyncpg.Pool = Depends(get_pool)) -> Response:
    await smart_list_tools.smart_list_delete(pool, list_id)
    return Response(status_code=204)


@router.get("/{list_id}/contacts", response_model=ApiResponse[list[ContactSummary]])
async def get_smart_list_contacts(
    list_id: UUID,
    cursor: str | None = Query(None, description="Opaque cursor from a previous page"),
    limit: int | None = Query(None, ge=1, le=100, description="Page size"),
    pool: asyncpg.Pool = Depends(get_pool),
    config: PkbConfig = Depends(get_config),
) -> ApiResponse[list[ContactSummary]]:
    """Return one page of the contacts currently matching a smart list."""
    contacts, next_cursor = await smart_list_tools.get_smart_list_contacts(
        pool, list_id, cursor=cursor, limit=limit, config=config.smart_lists
    )
    return ApiResponse[list[ContactSummary]](
        data=[ContactSummary.model_validate(c) for c in contacts],
        meta=ApiMeta(next_cursor=next_cursor, has_more=next_cursor is not None),
    )
