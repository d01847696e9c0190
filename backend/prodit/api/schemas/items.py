"""Catalog request schemas. Item bodies pass through in Xero's own shape."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ItemsUpdateRequest(BaseModel):
    """Items to create or update, keyed as Xero expects ("Items")."""

    items: List[Dict[str, Any]] = Field(default_factory=list, alias="Items")
