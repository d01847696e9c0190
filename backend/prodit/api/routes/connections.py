"""
Xero connection management routes.

Callers manage their own connections; admins also manage the shared
system connection that non-admin callers act through.

SECURITY: responses never include token values.
"""

from fastapi import APIRouter, Depends

from prodit.api.dependencies.providers import get_connection_service
from prodit.api.schemas.connections import (
    ConnectionListResponse,
    ConnectionStatusResponse,
    DisconnectResponse,
    to_connection_summary,
    to_status_response,
)
from prodit.platform.caller_context import CallerIdentity, get_caller, require_privileged
from prodit.services.xero_connection_service import XeroConnectionService

router = APIRouter(prefix="/api", tags=["connections"])


@router.get("/connections", response_model=ConnectionListResponse)
async def list_connections(
    caller: CallerIdentity = Depends(get_caller),
    service: XeroConnectionService = Depends(get_connection_service),
):
    connections = [to_connection_summary(s) for s in service.list_connections(caller)]
    return ConnectionListResponse(connections=connections, total=len(connections))


@router.delete("/connections/{tenant_id}", response_model=DisconnectResponse)
async def delete_connection(
    tenant_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: XeroConnectionService = Depends(get_connection_service),
):
    return DisconnectResponse(success=service.disconnect(caller, tenant_id))


@router.get("/status", response_model=ConnectionStatusResponse)
async def connection_status(
    caller: CallerIdentity = Depends(get_caller),
    service: XeroConnectionService = Depends(get_connection_service),
):
    """Admins see their own connection; everyone else sees the system connection."""
    return to_status_response(service.connection_status(caller))


@router.get("/admin/xero/status", response_model=ConnectionStatusResponse)
async def system_connection_status(
    caller: CallerIdentity = Depends(require_privileged),
    service: XeroConnectionService = Depends(get_connection_service),
):
    return to_status_response(service.system_status())


@router.delete("/admin/xero/disconnect", response_model=DisconnectResponse)
async def disconnect_system_connection(
    caller: CallerIdentity = Depends(require_privileged),
    service: XeroConnectionService = Depends(get_connection_service),
):
    return DisconnectResponse(success=service.disconnect_system(caller))
