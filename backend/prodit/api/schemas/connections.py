"""
Xero connection schemas for the connections and status API.

SECURITY: none of these models carry token values.
"""

from typing import List, Optional

from pydantic import BaseModel

from prodit.credentials.store import RecordSummary
from prodit.services.xero_connection_service import ConnectionStatus


# =============================================================================
# Response Models
# =============================================================================

class ConnectionSummary(BaseModel):
    """One stored Xero connection."""

    id: int
    tenant_id: str
    tenant_name: Optional[str] = None
    is_system_connection: bool = False
    last_synced_at: Optional[str] = None
    created_at: Optional[str] = None


class ConnectionListResponse(BaseModel):
    connections: List[ConnectionSummary]
    total: int


class ConnectionStatusResponse(BaseModel):
    """Status of the connection a caller's API calls would use."""

    connected: bool
    tenant_id: Optional[str] = None
    tenant_name: Optional[str] = None
    is_system_connection: bool = False
    last_synced_at: Optional[str] = None


class DisconnectResponse(BaseModel):
    success: bool


# =============================================================================
# Normalizers
# =============================================================================

def to_connection_summary(summary: RecordSummary) -> ConnectionSummary:
    return ConnectionSummary(
        id=summary.id,
        tenant_id=summary.tenant_id,
        tenant_name=summary.tenant_name,
        is_system_connection=summary.is_system_wide,
        last_synced_at=summary.last_synced_at.isoformat() if summary.last_synced_at else None,
        created_at=summary.created_at.isoformat() if summary.created_at else None,
    )


def to_status_response(status: ConnectionStatus) -> ConnectionStatusResponse:
    return ConnectionStatusResponse(
        connected=status.connected,
        tenant_id=status.tenant_id,
        tenant_name=status.tenant_name,
        is_system_connection=status.is_system_connection,
        last_synced_at=status.last_synced_at.isoformat() if status.last_synced_at else None,
    )
