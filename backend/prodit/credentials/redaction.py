"""
Credential redaction and audit logging utilities.

SECURITY REQUIREMENTS:
- Tokens NEVER appear in logs (access_token, refresh_token, id_token)
- Provider error bodies are scrubbed before logging
- ALLOWED in logs: tenant_name, tenant_id, owner_id

Audit Events:
- credential.stored
- credential.refreshed
- credential.revoked
- credential.error

Usage:
    from prodit.credentials.redaction import CredentialAuditLogger, AuditEventType

    audit = CredentialAuditLogger(owner_id)
    audit.log(
        event_type=AuditEventType.CREDENTIAL_STORED,
        tenant_id=tenant_id,
        tenant_name="Demo Company (NZ)",
    )
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"


class AuditEventType(str, Enum):
    """Credential audit event types."""
    CREDENTIAL_STORED = "credential.stored"
    CREDENTIAL_REFRESHED = "credential.refreshed"
    CREDENTIAL_REVOKED = "credential.revoked"
    CREDENTIAL_ERROR = "credential.error"


# Token-shaped values that must never reach a log sink
CREDENTIAL_SECRET_PATTERNS = [
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+"),
    re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"),  # JWT access/id tokens
    re.compile(r"(?i)((?:access|refresh|id)_token|client_secret|code)=[^&\s]+"),
]

# Keys whose values are always secret
SECRET_KEY_PATTERNS = [
    "token", "secret", "password", "authorization", "credential",
    "api_key", "apikey", "bearer",
]

# Keys allowed verbatim even though they match a secret pattern
ALLOWED_KEYS = ("token_type", "tenant_name", "tenant_id")


def is_credential_secret_key(key: str) -> bool:
    """
    Check if a key name indicates a credential secret.

    Args:
        key: The key name to check

    Returns:
        True if the key likely contains a secret
    """
    key_lower = key.lower()
    if key_lower in ALLOWED_KEYS:
        return False
    return any(pattern in key_lower for pattern in SECRET_KEY_PATTERNS)


def redact_credential_value(value: Any) -> Any:
    """
    Redact secret patterns from a single value.

    Args:
        value: The value to redact

    Returns:
        Redacted value
    """
    if not isinstance(value, str):
        return value

    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact credential secrets from a data structure.

    SECURITY: Always use this before logging provider responses.

    Args:
        data: Dictionary, list, or other data structure

    Returns:
        Copy of data with secrets redacted
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and is_credential_secret_key(key):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_credential_data(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_credential_data(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


class CredentialAuditLogger:
    """
    Structured audit logger for credential operations.

    SECURITY:
    - Tokens are NEVER logged
    - owner_id, tenant_id and tenant_name ARE logged
    """

    def __init__(self, owner_id: int):
        self.owner_id = owner_id
        self.logger = logging.getLogger("credentials.audit")

    def log(
        self,
        event_type: AuditEventType,
        tenant_id: Optional[str],
        tenant_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: Type of audit event
            tenant_id: Xero tenant the credential belongs to
            tenant_name: Xero organization display name
            metadata: Additional context (will be redacted)
        """
        safe_metadata = redact_credential_data(metadata) if metadata else {}

        audit_record = {
            "event_type": event_type.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "owner_id": self.owner_id,
            "tenant_id": tenant_id,
            "tenant_name": tenant_name,
            **safe_metadata,
        }

        self.logger.info(
            f"Credential audit: {event_type.value}",
            extra=audit_record
        )

    def log_error(
        self,
        tenant_id: Optional[str],
        error: str,
        tenant_name: Optional[str] = None,
    ) -> None:
        """Log a credential error. The message is redacted first."""
        self.log(
            event_type=AuditEventType.CREDENTIAL_ERROR,
            tenant_id=tenant_id,
            tenant_name=tenant_name,
            metadata={"error": redact_credential_value(error)},
        )


class CredentialLoggingFilter(logging.Filter):
    """
    Logging filter that redacts credential secrets from log records.

    Usage:
        logger.addFilter(CredentialLoggingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_credential_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_credential_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_credential_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        # Extra fields land on the record __dict__
        for key in list(record.__dict__.keys()):
            value = getattr(record, key)
            if is_credential_secret_key(key):
                setattr(record, key, REDACTED_VALUE)
            elif isinstance(value, (dict, list)):
                setattr(record, key, redact_credential_data(value))
            elif isinstance(value, str):
                setattr(record, key, redact_credential_value(value))

        return True


CREDENTIAL_LOGGERS = (
    "credentials.audit",
    "prodit.credentials",
    "prodit.integrations",
    "prodit.services",
)


def setup_credential_logging() -> None:
    """
    Configure credential-safe logging.

    Call this during application startup so every credential logger has
    the redaction filter applied.
    """
    # Logger filters only see records created on that exact logger, so the
    # root handlers get the filter too for records from child modules.
    targets = [logging.getLogger(name) for name in CREDENTIAL_LOGGERS]
    targets.extend(logging.getLogger().handlers)
    for target in targets:
        if not any(isinstance(f, CredentialLoggingFilter) for f in target.filters):
            target.addFilter(CredentialLoggingFilter())

    logger.info("Credential logging configured with redaction filter")
