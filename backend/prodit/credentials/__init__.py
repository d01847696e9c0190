"""
Credentials module for Xero OAuth token bundles.

This module provides:
- AES-256-GCM sealing of token bundles (cipher)
- Encrypted storage keyed by (owner, Xero tenant) (store)
- The credential error taxonomy (errors)
- Audit logging with automatic redaction (redaction)

SECURITY:
- Bundles are sealed at rest with PRODIT_TOKEN_KEY
- No plaintext tokens outside process memory
- Tokens NEVER appear in logs or API responses
- Allowed in logs: owner_id, tenant_id, tenant_name

Usage:
    from prodit.credentials import CredentialCipher, CredentialStore

    cipher = CredentialCipher.from_base64(settings.token_key)
    store = CredentialStore(db_session, cipher)
    store.upsert(owner_id, tenant_id, tenant_name, bundle)
"""

from prodit.credentials.bundle import TokenBundle
from prodit.credentials.cipher import CredentialCipher, SealedBundle
from prodit.credentials.errors import (
    ConfigError,
    CredentialStoreError,
    ExchangeError,
    IntegrityError,
    InvalidStateError,
    NoConnectionError,
    NoTenantFoundError,
    ReauthorizationRequired,
    UpstreamError,
)
from prodit.credentials.redaction import (
    AuditEventType,
    CredentialAuditLogger,
    redact_credential_data,
)
from prodit.credentials.store import CredentialRecord, CredentialStore, RecordSummary

__all__ = [
    "TokenBundle",
    "CredentialCipher",
    "SealedBundle",
    "ConfigError",
    "CredentialStoreError",
    "ExchangeError",
    "IntegrityError",
    "InvalidStateError",
    "NoConnectionError",
    "NoTenantFoundError",
    "ReauthorizationRequired",
    "UpstreamError",
    "AuditEventType",
    "CredentialAuditLogger",
    "redact_credential_data",
    "CredentialRecord",
    "CredentialStore",
    "RecordSummary",
]
