"""
Caller identity for authenticated requests.

Session authentication happens upstream; the auth layer puts a
CallerIdentity on request.state.caller before any route runs. Routes read
it through get_caller() and never trust ids from the query string.

Privileged callers (admins) hold their own Xero connection. Everyone else
acts through the system-wide connection.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from prodit.platform.errors import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)


class FieldPermission(str, Enum):
    """Catalog fields a caller may edit."""
    CODE = "code"
    NAME = "name"
    DESCRIPTION = "description"
    STATUS = "status"
    SALE_PRICE = "salePrice"
    SALES_ACCOUNT = "salesAccount"
    SALES_TAX = "salesTax"
    COST_PRICE = "costPrice"
    PURCHASE_ACCOUNT = "purchaseAccount"
    PURCHASE_TAX = "purchaseTax"


ALL_FIELD_PERMISSIONS: FrozenSet[FieldPermission] = frozenset(FieldPermission)


@dataclass(frozen=True)
class CallerIdentity:
    owner_id: int
    is_privileged: bool = False
    field_permissions: FrozenSet[FieldPermission] = field(default=ALL_FIELD_PERMISSIONS)

    def can_edit(self, permission: FieldPermission) -> bool:
        return permission in self.field_permissions


CallerResolver = Callable[[Request], Optional[CallerIdentity]]


class CallerContextMiddleware(BaseHTTPMiddleware):
    """
    Attaches the caller identity from the session layer to request.state.

    The resolver is supplied by the authentication layer; it returns None
    for anonymous requests.
    """

    def __init__(self, app, resolver: CallerResolver):
        super().__init__(app)
        self.resolver = resolver

    async def dispatch(self, request: Request, call_next):
        request.state.caller = self.resolver(request)
        return await call_next(request)


def get_caller(request: Request) -> CallerIdentity:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        AuthenticationError: If the auth layer did not identify a caller
    """
    caller = getattr(request.state, "caller", None)
    if not isinstance(caller, CallerIdentity):
        logger.warning("Request without caller identity", extra={"path": request.url.path})
        raise AuthenticationError()
    return caller


def require_privileged(request: Request) -> CallerIdentity:
    """FastAPI dependency for admin-only routes."""
    caller = get_caller(request)
    if not caller.is_privileged:
        logger.warning(
            "Privileged route denied",
            extra={"owner_id": caller.owner_id, "path": request.url.path},
        )
        raise PermissionDeniedError("Admin access required")
    return caller
