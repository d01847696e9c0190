"""
Error taxonomy for the Xero credential lifecycle.

Only the request pipeline decides whether a failure is refresh-eligible
(HTTP 401 from the accounting API). Everything else raises one of these
typed errors and never retries internally.

SECURITY: messages and details never include token values or the
encryption key.
"""

from typing import Any, Optional

from fastapi import status

from prodit.platform.errors import AppError

RECONNECT_URL = "/auth/xero"


class ConfigError(AppError):
    """Missing or malformed encryption key or OAuth client credentials."""

    def __init__(self, message: str):
        super().__init__(
            code="CONFIG_ERROR",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class IntegrityError(AppError):
    """Sealed credential failed authentication (tampering or key mismatch)."""

    def __init__(self, message: str = "Stored credential failed integrity verification"):
        super().__init__(
            code="CREDENTIAL_INTEGRITY_ERROR",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class CredentialStoreError(AppError):
    """Persistence of a credential record failed."""

    def __init__(self, message: str):
        super().__init__(
            code="CREDENTIAL_STORE_ERROR",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class ExchangeError(AppError):
    """Xero rejected an authorization-code or refresh-token grant."""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        provider_error: Any = None,
    ):
        self.upstream_status = upstream_status
        self.provider_error = provider_error
        super().__init__(
            code="TOKEN_EXCHANGE_FAILED",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={
                "upstream_status": upstream_status,
                "provider_error": provider_error,
            },
        )


class ReauthorizationRequired(AppError):
    """The stored refresh token is no longer usable; the user must reconnect."""

    def __init__(self, message: str = "Xero authorization expired. Please reconnect your Xero account."):
        super().__init__(
            code="REAUTHORIZATION_REQUIRED",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details={"reconnect_url": RECONNECT_URL},
        )


class NoConnectionError(AppError):
    """No credential record exists for the requested scope."""

    def __init__(self, message: str = "No Xero connection found. Please connect your Xero account."):
        super().__init__(
            code="NO_CONNECTION",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details={"reconnect_url": RECONNECT_URL},
        )


class NoTenantFoundError(AppError):
    """Xero returned zero organizations after a successful grant."""

    def __init__(
        self,
        message: str = "No Xero organizations found. Please grant access to at least one organization.",
    ):
        super().__init__(
            code="NO_TENANT_FOUND",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"reconnect_url": RECONNECT_URL},
        )


class UpstreamError(AppError):
    """Non-refreshable failure proxied from Xero (any status, or a transport failure)."""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        body: Any = None,
    ):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            code="UPSTREAM_ERROR",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"upstream_status": upstream_status, "upstream_body": body},
        )


class InvalidStateError(AppError):
    """OAuth callback state does not match the session that started the flow."""

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(
            code="INVALID_OAUTH_STATE",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )
