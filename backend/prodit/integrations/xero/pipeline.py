"""
Request pipeline for the Xero accounting API.

Every outbound accounting call goes through RequestPipeline.call():
1. Pick the credential (caller's own when privileged, the system-wide
   one otherwise)
2. Send the request with the bearer token and tenant header
3. On 401, refresh exactly once, persist the new bundle, retry once

Refreshes are serialized per (owner, tenant). Xero refresh tokens are
single-use, so a request that waited on the lock re-reads the record and
reuses tokens another request already rotated.

Usage:
    pipeline = RequestPipeline(store, manager, http_client, settings, locks)
    items = await pipeline.call(owner_id, is_privileged, "GET", "/Items")
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx

from prodit.config.settings import Settings
from prodit.credentials.bundle import TokenBundle
from prodit.credentials.errors import (
    CredentialStoreError,
    ExchangeError,
    NoConnectionError,
    ReauthorizationRequired,
    UpstreamError,
)
from prodit.credentials.redaction import AuditEventType, CredentialAuditLogger
from prodit.credentials.store import CredentialRecord, CredentialStore
from prodit.integrations.xero.oauth import TokenLifecycleManager

logger = logging.getLogger(__name__)

SYSTEM_CONNECTION_MISSING = (
    "System Xero connection not configured. Please contact your administrator."
)


class RefreshLocks:
    """
    In-process registry of one asyncio.Lock per (owner, tenant).

    An entry lives only while some request holds or waits on it, so the
    registry is bounded by the number of refreshes in flight.
    """

    def __init__(self):
        self._locks: Dict[Tuple[int, str], asyncio.Lock] = {}
        self._users: Dict[Tuple[int, str], int] = {}

    @asynccontextmanager
    async def hold(self, record: CredentialRecord) -> AsyncIterator[None]:
        key = (record.owner_id, record.tenant_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestPipeline:
    """
    Authenticated caller for the Xero accounting API.

    The store is bound to the current request's database session. The
    manager, http client and lock registry are shared application-wide.
    """

    def __init__(
        self,
        store: CredentialStore,
        manager: TokenLifecycleManager,
        http_client: httpx.AsyncClient,
        settings: Settings,
        locks: RefreshLocks,
    ):
        self.store = store
        self.manager = manager
        self.http = http_client
        self.settings = settings
        self.locks = locks

    async def call(
        self,
        owner_id: int,
        is_privileged: bool,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Call the accounting API on behalf of a caller.

        Args:
            owner_id: Calling user id
            is_privileged: Privileged callers use their own connection
            method: HTTP method
            path: Path under the accounting API base ("/Items")
            params: Query parameters
            json: JSON request body
            headers: Extra request headers

        Returns:
            Parsed JSON body, or None for an empty body

        Raises:
            NoConnectionError: No credential for this caller
            ReauthorizationRequired: The refresh grant was rejected
            UpstreamError: Any other failure, including a failed retry
        """
        record = self._load_record(owner_id, is_privileged)

        response = await self._send(record, method, path, params, json, headers)
        if response.status_code != 401:
            return self._result(response, method, path)

        logger.info(
            "Xero returned 401, refreshing access token",
            extra={"owner_id": record.owner_id, "tenant_id": record.tenant_id, "path": path},
        )
        record = await self._refresh(record)

        response = await self._send(record, method, path, params, json, headers)
        return self._result(response, method, path)

    def _load_record(self, owner_id: int, is_privileged: bool) -> CredentialRecord:
        if is_privileged:
            record = self.store.find(owner_id)
            if record is None:
                raise NoConnectionError()
        else:
            record = self.store.find_system_wide()
            if record is None:
                raise NoConnectionError(SYSTEM_CONNECTION_MISSING)
        return record

    async def _refresh(self, stale: CredentialRecord) -> CredentialRecord:
        async with self.locks.hold(stale):
            current = self.store.find(stale.owner_id, stale.tenant_id)
            if current is None:
                raise NoConnectionError()
            if current.bundle.access_token != stale.bundle.access_token:
                logger.info(
                    "Reusing tokens rotated by a concurrent request",
                    extra={"owner_id": current.owner_id, "tenant_id": current.tenant_id},
                )
                return current

            audit = CredentialAuditLogger(current.owner_id)
            try:
                bundle = await self.manager.refresh(current.bundle.refresh_token)
            except ExchangeError as exc:
                # Leave the stale record in place for diagnosis
                audit.log_error(current.tenant_id, exc.message, tenant_name=current.tenant_name)
                raise ReauthorizationRequired() from exc

            try:
                self.store.upsert(
                    current.owner_id,
                    current.tenant_id,
                    current.tenant_name,
                    bundle,
                    is_system_wide=current.is_system_wide,
                )
            except CredentialStoreError as exc:
                # Xero already rotated the refresh token; the stored one is now dead
                audit.log_error(
                    current.tenant_id,
                    f"Refreshed tokens could not be persisted: {exc.message}",
                    tenant_name=current.tenant_name,
                )
                raise
            audit.log(
                event_type=AuditEventType.CREDENTIAL_REFRESHED,
                tenant_id=current.tenant_id,
                tenant_name=current.tenant_name,
                metadata={"trigger": "http_401"},
            )
            return self._with_bundle(current, bundle)

    async def _send(
        self,
        record: CredentialRecord,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        json: Any,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        request_headers = {
            **(headers or {}),
            "Authorization": f"Bearer {record.bundle.access_token}",
            "xero-tenant-id": record.tenant_id,
            "Accept": "application/json",
        }
        url = f"{self.settings.xero_api_base_url}/{path.lstrip('/')}"
        try:
            return await self.http.request(
                method.upper(),
                url,
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Xero API request failed",
                extra={
                    "method": method.upper(),
                    "path": path,
                    "tenant_id": record.tenant_id,
                    "error_type": type(exc).__name__,
                },
            )
            raise UpstreamError(f"Could not reach Xero: {type(exc).__name__}") from exc

    @staticmethod
    def _result(response: httpx.Response, method: str, path: str) -> Any:
        body = _parse_body(response)
        if response.is_success:
            return body
        logger.warning(
            "Xero API call failed",
            extra={"method": method.upper(), "path": path, "status_code": response.status_code},
        )
        raise UpstreamError(
            f"Xero API error ({response.status_code})",
            upstream_status=response.status_code,
            body=body,
        )

    @staticmethod
    def _with_bundle(record: CredentialRecord, bundle: TokenBundle) -> CredentialRecord:
        return CredentialRecord(
            id=record.id,
            owner_id=record.owner_id,
            tenant_id=record.tenant_id,
            tenant_name=record.tenant_name,
            bundle=bundle,
            is_system_wide=record.is_system_wide,
            last_synced_at=record.last_synced_at,
        )
