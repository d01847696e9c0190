"""
Runtime settings for Prodit.

All values come from the environment. Secrets supplied out-of-band:
- XERO_CLIENT_ID / XERO_CLIENT_SECRET: OAuth client credentials
- PRODIT_TOKEN_KEY: 32-byte base64 AES key for sealing token bundles
  (PREDITOR_TOKEN_KEY is accepted for older deployments)
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from prodit.credentials.errors import ConfigError

XERO_AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_CONNECTIONS_URL = "https://api.xero.com/connections"
XERO_API_BASE_URL = "https://api.xero.com/api.xro/2.0"

DEFAULT_XERO_SCOPES: Tuple[str, ...] = (
    "openid",
    "email",
    "profile",
    "offline_access",
    "accounting.settings.read",
    "accounting.settings",
    "accounting.transactions",
)

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_DATABASE_URL = "sqlite:///./prodit.db"


def _public_url() -> str:
    if os.getenv("PUBLIC_URL"):
        return os.environ["PUBLIC_URL"].rstrip("/")
    if os.getenv("RAILWAY_PUBLIC_DOMAIN"):
        return f"https://{os.environ['RAILWAY_PUBLIC_DOMAIN']}"
    return f"http://localhost:{os.getenv('PORT', '3000')}"


def normalize_database_url(url: str) -> str:
    """Heroku/Railway style postgres:// URLs are not accepted by SQLAlchemy."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, loaded once at startup and never mutated."""

    database_url: str = DEFAULT_DATABASE_URL
    token_key: Optional[str] = field(default=None, repr=False)
    xero_client_id: Optional[str] = None
    xero_client_secret: Optional[str] = field(default=None, repr=False)
    public_url: str = "http://localhost:3000"
    xero_scopes: Tuple[str, ...] = DEFAULT_XERO_SCOPES
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    environment: str = "development"
    xero_authorize_url: str = XERO_AUTHORIZE_URL
    xero_token_url: str = XERO_TOKEN_URL
    xero_connections_url: str = XERO_CONNECTIONS_URL
    xero_api_base_url: str = XERO_API_BASE_URL

    @classmethod
    def from_env(cls) -> "Settings":
        scopes = os.getenv("XERO_SCOPES")
        return cls(
            database_url=normalize_database_url(os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)),
            token_key=os.getenv("PRODIT_TOKEN_KEY") or os.getenv("PREDITOR_TOKEN_KEY"),
            xero_client_id=os.getenv("XERO_CLIENT_ID"),
            xero_client_secret=os.getenv("XERO_CLIENT_SECRET"),
            public_url=_public_url(),
            xero_scopes=tuple(scopes.split()) if scopes else DEFAULT_XERO_SCOPES,
            http_timeout_seconds=float(
                os.getenv("XERO_HTTP_TIMEOUT_SECONDS", str(DEFAULT_HTTP_TIMEOUT_SECONDS))
            ),
            environment=os.getenv("ENVIRONMENT", os.getenv("NODE_ENV", "development")),
        )

    @property
    def redirect_uri(self) -> str:
        return f"{self.public_url}/callback"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def require_oauth_client(self) -> Tuple[str, str]:
        """
        Return the OAuth client id/secret pair.

        Raises:
            ConfigError: If either value is missing
        """
        if not self.xero_client_id or not self.xero_client_secret:
            raise ConfigError(
                "Xero OAuth client credentials not configured. "
                "Set XERO_CLIENT_ID and XERO_CLIENT_SECRET."
            )
        return self.xero_client_id, self.xero_client_secret


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
