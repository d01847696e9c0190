"""
Catalog service: product items, tax rates and accounts from Xero.

Everything goes through the RequestPipeline, so token expiry is handled
there and errors arrive already typed (NoConnectionError,
ReauthorizationRequired, UpstreamError).
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from prodit.integrations.xero.pipeline import RequestPipeline
from prodit.platform.caller_context import CallerIdentity, FieldPermission

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
SHORT_QUERY_NOTE = "Type at least 2 characters to search"

SEARCH_FIELDS = ("Code", "Name", "Description")

# Permission -> location of the Xero item field it guards
FIELD_PATHS: Dict[FieldPermission, Tuple[str, ...]] = {
    FieldPermission.CODE: ("Code",),
    FieldPermission.NAME: ("Name",),
    FieldPermission.DESCRIPTION: ("Description",),
    FieldPermission.STATUS: ("Status",),
    FieldPermission.SALE_PRICE: ("SalesDetails", "UnitPrice"),
    FieldPermission.SALES_ACCOUNT: ("SalesDetails", "AccountCode"),
    FieldPermission.SALES_TAX: ("SalesDetails", "TaxType"),
    FieldPermission.COST_PRICE: ("PurchaseDetails", "UnitPrice"),
    FieldPermission.PURCHASE_ACCOUNT: ("PurchaseDetails", "AccountCode"),
    FieldPermission.PURCHASE_TAX: ("PurchaseDetails", "TaxType"),
}

TAX_RATE_FIELDS = ("Name", "TaxType", "Status")
ACCOUNT_FIELDS = ("AccountID", "Code", "Name", "Type", "Status")


def build_item_filter(query: str) -> str:
    """Case-insensitive contains filter over code, name and description."""
    safe = query.replace('"', '\\"').lower()
    return " OR ".join(
        f'({name} != null AND {name}.ToLower().Contains("{safe}"))'
        for name in SEARCH_FIELDS
    )


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(MAX_PAGE_SIZE, int(limit)))


def strip_unpermitted_fields(item: Dict[str, Any], caller: CallerIdentity) -> Dict[str, Any]:
    """Return a copy of an item without the fields the caller cannot edit."""
    cleaned = copy.deepcopy(item)
    for permission, path in FIELD_PATHS.items():
        if caller.can_edit(permission):
            continue
        # Xero matches on Code when ItemID is absent
        if path == ("Code",) and not cleaned.get("ItemID"):
            continue
        parent = cleaned
        for key in path[:-1]:
            parent = parent.get(key) if isinstance(parent, dict) else None
        if isinstance(parent, dict):
            parent.pop(path[-1], None)
    for section in ("SalesDetails", "PurchaseDetails"):
        if cleaned.get(section) == {}:
            del cleaned[section]
    return cleaned


def _project(rows: Any, fields: Tuple[str, ...]) -> List[Dict[str, Any]]:
    if not isinstance(rows, list):
        return []
    return [{name: row.get(name) for name in fields} for row in rows if isinstance(row, dict)]


class CatalogService:
    def __init__(self, pipeline: RequestPipeline):
        self.pipeline = pipeline

    async def search_items(
        self,
        caller: CallerIdentity,
        query: Optional[str],
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Search items by code, name or description.

        Queries shorter than two characters return no items and a note
        without calling Xero.
        """
        text = (query or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            return {"Items": [], "Note": SHORT_QUERY_NOTE}

        page = max(1, int(page or 1))
        page_size = clamp_limit(limit)
        data = await self.pipeline.call(
            caller.owner_id,
            caller.is_privileged,
            "GET",
            "/Items",
            params={"page": str(page), "order": "Name", "where": build_item_filter(text)},
        )
        items = data.get("Items") if isinstance(data, dict) else None
        items = (items if isinstance(items, list) else [])[:page_size]
        logger.info(
            "Item search completed",
            extra={"owner_id": caller.owner_id, "page": page, "returned": len(items)},
        )
        return {"Items": items, "page": page, "pageSize": page_size, "returned": len(items)}

    async def update_items(self, caller: CallerIdentity, items: List[Dict[str, Any]]) -> Any:
        """Post item changes to Xero after dropping fields the caller may not edit."""
        payload = {"Items": [strip_unpermitted_fields(item, caller) for item in items]}
        result = await self.pipeline.call(
            caller.owner_id,
            caller.is_privileged,
            "POST",
            "/Items",
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        logger.info(
            "Items updated",
            extra={"owner_id": caller.owner_id, "count": len(payload["Items"])},
        )
        return result

    async def list_tax_rates(self, caller: CallerIdentity) -> Dict[str, Any]:
        data = await self.pipeline.call(caller.owner_id, caller.is_privileged, "GET", "/TaxRates")
        rows = data.get("TaxRates") if isinstance(data, dict) else None
        return {"TaxRates": _project(rows, TAX_RATE_FIELDS)}

    async def list_accounts(self, caller: CallerIdentity) -> Dict[str, Any]:
        """Active accounts ordered by code."""
        data = await self.pipeline.call(
            caller.owner_id,
            caller.is_privileged,
            "GET",
            "/Accounts",
            params={"where": 'Status=="ACTIVE"', "order": "Code"},
        )
        rows = data.get("Accounts") if isinstance(data, dict) else None
        return {"Accounts": _project(rows, ACCOUNT_FIELDS)}
