"""
Xero token lifecycle manager.

Handles:
- Building the authorization redirect
- Exchanging an authorization code for a token bundle
- Refreshing a bundle with its (single-use, rotating) refresh token
- Resolving which Xero organization a fresh grant should bind to

This component never persists anything. Callers (the OAuth callback
service and the request pipeline) hand its results to the CredentialStore.

SECURITY:
- Provider error bodies are scrubbed before logging
- Token values are never logged
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional
from urllib.parse import urlencode

import httpx

from prodit.config.settings import Settings
from prodit.credentials.bundle import TokenBundle
from prodit.credentials.errors import ExchangeError, NoTenantFoundError, UpstreamError
from prodit.credentials.redaction import redact_credential_data

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TenantInfo:
    """The Xero organization a grant is bound to."""
    tenant_id: str
    tenant_name: Optional[str]
    created_date_utc: Optional[datetime] = None


def parse_xero_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Xero connection timestamp.

    Xero sends seven fractional digits ("2024-06-01T10:00:00.1234567");
    anything after microseconds is dropped. Naive values are UTC.
    """
    if not isinstance(value, str) or not value:
        return None
    text = _FRACTION_RE.sub(r".\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def select_most_recent_tenant(connections: List[dict]) -> TenantInfo:
    """
    Pick the organization to bind a new grant to.

    Policy: the most recently connected organization wins (createdDateUtc
    descending). Entries without a parseable timestamp rank last; equal
    timestamps keep Xero's order.

    Raises:
        NoTenantFoundError: If there are no organizations
    """
    candidates = [c for c in connections if isinstance(c, dict) and c.get("tenantId")]
    if not candidates:
        raise NoTenantFoundError()

    ranked = sorted(
        candidates,
        key=lambda c: parse_xero_timestamp(c.get("createdDateUtc")) or _EPOCH,
        reverse=True,
    )
    chosen = ranked[0]
    return TenantInfo(
        tenant_id=chosen["tenantId"],
        tenant_name=chosen.get("tenantName"),
        created_date_utc=parse_xero_timestamp(chosen.get("createdDateUtc")),
    )


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class TokenLifecycleManager:
    """
    Talks to the Xero identity endpoints on behalf of one application.

    The httpx client is injected so the connection pool is shared with the
    request pipeline and tests can supply a mock transport.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http = http_client

    def build_authorization_url(self, state: str, redirect_uri: Optional[str] = None) -> str:
        """
        Build the Xero authorization redirect.

        Args:
            state: Value echoed back on the callback (the initiating owner id)
            redirect_uri: Callback URL; defaults to <public url>/callback

        Raises:
            ConfigError: If the OAuth client id is not configured
        """
        client_id, _ = self.settings.require_oauth_client()
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri or self.settings.redirect_uri,
            "scope": " ".join(self.settings.xero_scopes),
            "state": state,
        }
        return f"{self.settings.xero_authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str, redirect_uri: str) -> TokenBundle:
        """
        Exchange an authorization code for a token bundle.

        Raises:
            ExchangeError: If Xero rejects the grant
            UpstreamError: If Xero cannot be reached
        """
        if not code:
            raise ExchangeError("Authorization code is missing")
        payload = await self._post_token_form({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        })
        logger.info("Authorization code exchanged for Xero tokens")
        return TokenBundle.from_token_response(payload)

    async def refresh(self, existing_refresh_token: str) -> TokenBundle:
        """
        Trade a refresh token for a new bundle.

        The returned refresh token supersedes the old one, which Xero will
        reject from now on.

        Raises:
            ExchangeError: If Xero rejects the refresh token
            UpstreamError: If Xero cannot be reached
        """
        if not existing_refresh_token:
            raise ExchangeError("No refresh token available")
        payload = await self._post_token_form({
            "grant_type": "refresh_token",
            "refresh_token": existing_refresh_token,
        })
        if isinstance(payload, dict) and payload.get("access_token") and not payload.get("refresh_token"):
            # Non-rotating response: keep the pair invariant
            payload = {**payload, "refresh_token": existing_refresh_token}
        logger.info("Xero access token refreshed")
        return TokenBundle.from_token_response(payload)

    async def resolve_tenant(self, access_token: str) -> TenantInfo:
        """
        Find the organization a fresh grant should bind to.

        Raises:
            NoTenantFoundError: If the grant covers no organizations
            UpstreamError: If the connections listing fails
        """
        try:
            response = await self.http.get(
                self.settings.xero_connections_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Xero connections request failed",
                extra={"error_type": type(exc).__name__},
            )
            raise UpstreamError("Could not reach Xero connections endpoint") from exc

        body = _response_body(response)
        if not response.is_success:
            safe_body = redact_credential_data(body)
            logger.error(
                "Xero connections listing rejected",
                extra={"status_code": response.status_code, "provider_error": safe_body},
            )
            raise UpstreamError(
                "Xero connections listing failed",
                upstream_status=response.status_code,
                body=safe_body,
            )

        connections = body if isinstance(body, list) else []
        tenant = select_most_recent_tenant(connections)
        logger.info(
            "Resolved Xero tenant",
            extra={
                "tenant_id": tenant.tenant_id,
                "tenant_name": tenant.tenant_name,
                "candidates": len(connections),
            },
        )
        return tenant

    async def _post_token_form(self, form: dict) -> Any:
        client_id, client_secret = self.settings.require_oauth_client()
        data = {**form, "client_id": client_id, "client_secret": client_secret}
        grant_type = form["grant_type"]

        try:
            response = await self.http.post(
                self.settings.xero_token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Xero token request failed",
                extra={"grant_type": grant_type, "error_type": type(exc).__name__},
            )
            raise UpstreamError("Could not reach Xero token endpoint") from exc

        body = _response_body(response)
        if not response.is_success:
            safe_body = redact_credential_data(body)
            logger.warning(
                "Xero token endpoint rejected grant",
                extra={
                    "grant_type": grant_type,
                    "status_code": response.status_code,
                    "provider_error": safe_body,
                },
            )
            raise ExchangeError(
                f"Xero rejected the {grant_type} grant",
                upstream_status=response.status_code,
                provider_error=safe_body,
            )
        return body
