"""
Xero connection service.

Owns the OAuth callback flow and connection management:
- State verification (the state token is the initiating owner's id)
- Code exchange, tenant resolution and persistence
- Connection status for callers and for the shared system connection
- Disconnect (hard delete; Xero-side grants are not revoked)

Privileged callers who connect become the system-wide connection that
unprivileged callers act through.
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from prodit.credentials.errors import ExchangeError, InvalidStateError, ReauthorizationRequired
from prodit.credentials.store import CredentialStore, RecordSummary
from prodit.integrations.xero.oauth import TokenLifecycleManager
from prodit.platform.caller_context import CallerIdentity

logger = logging.getLogger(__name__)

ADMIN_CONNECTED_REDIRECT = "/admin?connected=true"
USER_CONNECTED_REDIRECT = "/?connected=true"
ADMIN_HOME = "/admin"
USER_HOME = "/"


@dataclass
class ConnectionStatus:
    connected: bool
    tenant_id: Optional[str] = None
    tenant_name: Optional[str] = None
    is_system_connection: bool = False
    last_synced_at: Optional[datetime] = None


def state_for(owner_id: int) -> str:
    """State token sent with the authorization redirect."""
    return str(owner_id)


def verify_state(state: Optional[str], owner_id: Optional[int]) -> None:
    """
    Check the callback state belongs to the session that started the flow.

    Raises:
        InvalidStateError: On a missing or mismatched state
    """
    if not state or owner_id is None:
        raise InvalidStateError()
    if not hmac.compare_digest(state.encode("utf-8"), state_for(owner_id).encode("utf-8")):
        logger.warning("OAuth state mismatch", extra={"owner_id": owner_id})
        raise InvalidStateError()


def connected_redirect(caller: CallerIdentity) -> str:
    return ADMIN_CONNECTED_REDIRECT if caller.is_privileged else USER_CONNECTED_REDIRECT


def failed_redirect(caller: CallerIdentity, error_code: str) -> str:
    """Back to the app with the failure flagged so it can offer to reconnect."""
    home = ADMIN_HOME if caller.is_privileged else USER_HOME
    return f"{home}?connected=false&error={error_code.lower()}"


class XeroConnectionService:
    """Connection lifecycle for one request (store bound to its session)."""

    def __init__(self, store: CredentialStore, manager: TokenLifecycleManager):
        self.store = store
        self.manager = manager

    def authorization_url(self, caller: CallerIdentity, redirect_uri: str) -> str:
        url = self.manager.build_authorization_url(state_for(caller.owner_id), redirect_uri)
        logger.info(
            "Redirecting caller to Xero authorization",
            extra={"owner_id": caller.owner_id, "redirect_uri": redirect_uri},
        )
        return url

    async def complete_authorization(
        self,
        caller: CallerIdentity,
        code: Optional[str],
        state: Optional[str],
        redirect_uri: str,
    ) -> RecordSummary:
        """
        Finish the OAuth callback: verify, exchange, resolve tenant, persist.

        State is checked before any provider call.

        Raises:
            InvalidStateError: State does not match the caller
            ReauthorizationRequired: Xero rejected the code
            NoTenantFoundError: The grant covers no organizations
        """
        verify_state(state, caller.owner_id)

        try:
            bundle = await self.manager.exchange_authorization_code(code, redirect_uri)
        except ExchangeError as exc:
            logger.warning(
                "Xero rejected the authorization code",
                extra={"owner_id": caller.owner_id, "upstream_status": exc.upstream_status},
            )
            raise ReauthorizationRequired() from exc
        tenant = await self.manager.resolve_tenant(bundle.access_token)

        summary = self.store.upsert(
            caller.owner_id,
            tenant.tenant_id,
            tenant.tenant_name,
            bundle,
            is_system_wide=caller.is_privileged,
        )
        logger.info(
            "Connected Xero organization",
            extra={
                "owner_id": caller.owner_id,
                "tenant_id": tenant.tenant_id,
                "tenant_name": tenant.tenant_name,
                "is_system_wide": caller.is_privileged,
            },
        )
        return summary

    def list_connections(self, caller: CallerIdentity) -> List[RecordSummary]:
        return self.store.list_summaries(caller.owner_id)

    def connection_status(self, caller: CallerIdentity) -> ConnectionStatus:
        """Status of the connection this caller's API calls would use."""
        if caller.is_privileged:
            summaries = self.store.list_summaries(caller.owner_id)
            summary = summaries[0] if summaries else None
        else:
            summary = self.store.system_summary()
        return self._status(summary, is_system_connection=not caller.is_privileged)

    def system_status(self) -> ConnectionStatus:
        return self._status(self.store.system_summary(), is_system_connection=True)

    def disconnect(self, caller: CallerIdentity, tenant_id: str) -> bool:
        removed = self.store.remove(caller.owner_id, tenant_id)
        logger.info(
            "Xero disconnect requested",
            extra={"owner_id": caller.owner_id, "tenant_id": tenant_id, "removed": removed},
        )
        return removed

    def disconnect_system(self, caller: CallerIdentity) -> bool:
        removed = self.store.remove_system_wide()
        logger.info(
            "System Xero disconnect requested",
            extra={"owner_id": caller.owner_id, "removed": removed},
        )
        return removed

    @staticmethod
    def _status(summary: Optional[RecordSummary], is_system_connection: bool) -> ConnectionStatus:
        if summary is None:
            return ConnectionStatus(connected=False, is_system_connection=is_system_connection)
        return ConnectionStatus(
            connected=True,
            tenant_id=summary.tenant_id,
            tenant_name=summary.tenant_name,
            is_system_connection=is_system_connection,
            last_synced_at=summary.last_synced_at,
        )
