"""
Tests for XeroConnectionService.

Tests cover:
- State binding: a mismatched state is rejected before any exchange
- Callback flow persists under the caller, system-wide for admins
- Status and disconnect behaviour
"""

import httpx
import pytest

from prodit.credentials.errors import (
    ExchangeError,
    InvalidStateError,
    NoTenantFoundError,
    ReauthorizationRequired,
)
from prodit.integrations.xero.oauth import TokenLifecycleManager
from prodit.platform.caller_context import CallerIdentity
from prodit.services.xero_connection_service import (
    ADMIN_CONNECTED_REDIRECT,
    USER_CONNECTED_REDIRECT,
    XeroConnectionService,
    connected_redirect,
    failed_redirect,
    verify_state,
)
from prodit.tests.fakes import connections_response, make_bundle, token_response

REDIRECT_URI = "https://prodit.test/callback"

ADMIN = CallerIdentity(owner_id=1, is_privileged=True)
USER = CallerIdentity(owner_id=7, is_privileged=False)


@pytest.fixture
def service(store, settings, http_client) -> XeroConnectionService:
    return XeroConnectionService(store, TokenLifecycleManager(settings, http_client))


def _script_successful_grant(fake_xero):
    fake_xero.token_replies.append(token_response("access-1", "refresh-1"))
    fake_xero.connections_replies.append(connections_response(
        {"tenantId": "tenant-a", "tenantName": "Demo Co", "createdDateUtc": "2024-06-01T00:00:00"},
    ))


class TestVerifyState:

    def test_matching_state(self):
        verify_state("7", 7)

    @pytest.mark.parametrize("state", [None, "", "8", "7 "])
    def test_mismatched_state(self, state):
        with pytest.raises(InvalidStateError):
            verify_state(state, 7)

    def test_no_session_owner(self):
        with pytest.raises(InvalidStateError):
            verify_state("7", None)


class TestCompleteAuthorization:

    @pytest.mark.asyncio
    async def test_state_mismatch_rejected_before_exchange(self, service, fake_xero, store):
        _script_successful_grant(fake_xero)

        with pytest.raises(InvalidStateError):
            await service.complete_authorization(USER, "code", "999", REDIRECT_URI)

        assert fake_xero.requests == []
        assert store.find(USER.owner_id) is None

    @pytest.mark.asyncio
    async def test_user_grant_persisted(self, service, fake_xero, store):
        _script_successful_grant(fake_xero)

        summary = await service.complete_authorization(USER, "code", "7", REDIRECT_URI)

        assert summary.tenant_id == "tenant-a"
        assert summary.is_system_wide is False
        record = store.find(7)
        assert record.bundle.access_token == "access-1"
        assert record.tenant_name == "Demo Co"

    @pytest.mark.asyncio
    async def test_admin_grant_becomes_system_connection(self, service, fake_xero, store):
        _script_successful_grant(fake_xero)

        await service.complete_authorization(ADMIN, "code", "1", REDIRECT_URI)

        record = store.find_system_wide()
        assert record.owner_id == 1

    @pytest.mark.asyncio
    async def test_rejected_code_stores_nothing(self, service, fake_xero, store):
        fake_xero.token_replies.append(httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(ReauthorizationRequired) as exc_info:
            await service.complete_authorization(USER, "code", "7", REDIRECT_URI)

        assert exc_info.value.details["reconnect_url"] == "/auth/xero"
        assert isinstance(exc_info.value.__cause__, ExchangeError)

        assert store.find(7) is None

    @pytest.mark.asyncio
    async def test_fractional_expires_in_still_connects(self, service, fake_xero, store):
        fake_xero.token_replies.append(token_response("access-1", "refresh-1", expires_in="1799.5"))
        fake_xero.connections_replies.append(connections_response(
            {"tenantId": "tenant-a", "tenantName": "Demo Co", "createdDateUtc": "2024-06-01T00:00:00"},
        ))

        await service.complete_authorization(USER, "code", "7", REDIRECT_URI)

        record = store.find(7)
        assert record.bundle.refresh_token == "refresh-1"
        assert record.bundle.expires_in == 1799

    @pytest.mark.asyncio
    async def test_no_organizations_stores_nothing(self, service, fake_xero, store):
        fake_xero.token_replies.append(token_response())
        fake_xero.connections_replies.append(connections_response())

        with pytest.raises(NoTenantFoundError):
            await service.complete_authorization(USER, "code", "7", REDIRECT_URI)

        assert store.find(7) is None


class TestStatusAndDisconnect:

    def test_redirects(self):
        assert connected_redirect(ADMIN) == ADMIN_CONNECTED_REDIRECT
        assert connected_redirect(USER) == USER_CONNECTED_REDIRECT
        assert failed_redirect(ADMIN, "REAUTHORIZATION_REQUIRED") == "/admin?connected=false&error=reauthorization_required"
        assert failed_redirect(USER, "NO_TENANT_FOUND") == "/?connected=false&error=no_tenant_found"

    def test_authorization_url_carries_owner_state(self, service):
        url = service.authorization_url(USER, REDIRECT_URI)

        assert "state=7" in url

    def test_user_status_reflects_system_connection(self, service, store):
        assert service.connection_status(USER).connected is False

        store.upsert(1, "tenant-sys", "Company", make_bundle(), is_system_wide=True)
        status = service.connection_status(USER)

        assert status.connected is True
        assert status.tenant_name == "Company"
        assert status.is_system_connection is True

    def test_admin_status_reflects_own_connection(self, service, store):
        store.upsert(1, "tenant-own", "Own Co", make_bundle())

        status = service.connection_status(ADMIN)

        assert status.tenant_id == "tenant-own"
        assert status.is_system_connection is False

    def test_system_status(self, service, store):
        store.upsert(1, "tenant-sys", "Company", make_bundle(), is_system_wide=True)

        status = service.system_status()

        assert status.connected is True
        assert status.last_synced_at is not None

    def test_disconnect(self, service, store):
        store.upsert(7, "tenant-a", "Demo Co", make_bundle())

        assert service.disconnect(USER, "tenant-a") is True
        assert service.list_connections(USER) == []

    def test_disconnect_system(self, service, store):
        store.upsert(1, "tenant-sys", "Company", make_bundle(), is_system_wide=True)

        assert service.disconnect_system(ADMIN) is True
        assert service.system_status().connected is False
