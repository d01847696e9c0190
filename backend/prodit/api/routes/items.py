"""
Catalog routes: items, tax rates and accounts.

All Xero traffic goes through the request pipeline; a stale access token
is refreshed there and never reaches these handlers.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from prodit.api.dependencies.providers import get_catalog_service
from prodit.api.schemas.items import ItemsUpdateRequest
from prodit.platform.caller_context import CallerIdentity, get_caller
from prodit.services.catalog_service import CatalogService

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/items/search")
async def search_items(
    query: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    caller: CallerIdentity = Depends(get_caller),
    service: CatalogService = Depends(get_catalog_service),
):
    return await service.search_items(caller, query, page=page, limit=limit)


@router.post("/items/update")
async def update_items(
    body: ItemsUpdateRequest,
    caller: CallerIdentity = Depends(get_caller),
    service: CatalogService = Depends(get_catalog_service),
):
    return await service.update_items(caller, body.items)


@router.get("/taxrates")
async def list_tax_rates(
    caller: CallerIdentity = Depends(get_caller),
    service: CatalogService = Depends(get_catalog_service),
):
    return await service.list_tax_rates(caller)


@router.get("/accounts")
async def list_accounts(
    caller: CallerIdentity = Depends(get_caller),
    service: CatalogService = Depends(get_catalog_service),
):
    return await service.list_accounts(caller)
