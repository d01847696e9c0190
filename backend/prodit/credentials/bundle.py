"""
Token bundle: the access + refresh token pair issued by Xero.

SECURITY: token values are excluded from repr() so a bundle can never
leak through a log line or traceback by accident.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from prodit.credentials.errors import ExchangeError

_KNOWN_FIELDS = ("access_token", "refresh_token", "expires_in", "token_type")


def _parse_expires_in(value: Any) -> Optional[int]:
    """Whole seconds, or None when the provider sends something unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class TokenBundle:
    """
    Delegated-access credential set for one (owner, Xero tenant) pair.

    expires_in is informational only. The accounting API's 401 response
    is what decides a token is stale.
    """
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_in: Optional[int] = None
    token_type: Optional[str] = "Bearer"
    # Remaining token response fields (id_token, scope, ...) kept verbatim
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if not self.access_token or not self.refresh_token:
            raise ValueError("A token bundle requires both an access token and a refresh token")

    @classmethod
    def from_token_response(cls, payload: Any) -> "TokenBundle":
        """
        Build a bundle from a Xero token endpoint response.

        Raises:
            ExchangeError: If the response does not carry both tokens
        """
        if not isinstance(payload, dict):
            raise ExchangeError("Token endpoint returned an unexpected payload")
        if not payload.get("access_token") or not payload.get("refresh_token"):
            raise ExchangeError(
                "Token endpoint response is missing the access or refresh token",
                provider_error={"missing": [
                    key for key in ("access_token", "refresh_token") if not payload.get(key)
                ]},
            )
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenBundle":
        """Rebuild a bundle from its serialized (token response) form."""
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_in=_parse_expires_in(data.get("expires_in")),
            token_type=data.get("token_type"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the same shape as the Xero token response."""
        return {
            **self.extra,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }
