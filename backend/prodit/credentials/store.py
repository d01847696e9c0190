"""
Credential storage service for Xero token bundles.

SECURITY REQUIREMENTS:
- Bundles are sealed before storage and opened only on read
- No plaintext tokens outside process memory
- Summaries returned to the API never contain secrets

Concurrency:
- Each operation is a single statement committed on its own
- upsert is INSERT ... ON CONFLICT (user_id, tenant_id) DO UPDATE, so
  concurrent writers never duplicate a row; the last writer wins

Usage:
    store = CredentialStore(db_session, cipher)

    summary = store.upsert(owner_id, tenant_id, tenant_name, bundle, is_system_wide=False)
    record = store.find(owner_id)
    store.remove(owner_id, tenant_id)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from prodit.credentials.bundle import TokenBundle
from prodit.credentials.cipher import CredentialCipher, SealedBundle
from prodit.credentials.errors import CredentialStoreError
from prodit.credentials.redaction import AuditEventType, CredentialAuditLogger
from prodit.models.xero_connection import XeroConnection

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class RecordSummary:
    """
    Credential metadata safe for API responses and logging.

    SECURITY: Does NOT include token values.
    """
    id: int
    tenant_id: str
    tenant_name: Optional[str]
    is_system_wide: bool = False
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class CredentialRecord:
    """A credential row with its bundle opened (in memory only)."""
    id: int
    owner_id: int
    tenant_id: str
    tenant_name: Optional[str]
    bundle: TokenBundle = field(repr=False)
    is_system_wide: bool = False
    last_synced_at: Optional[datetime] = None


class CredentialStore:
    """
    Persistence for sealed Xero credentials keyed by (owner, tenant).

    The session and cipher are injected so tests can use an in-memory
    database and a throwaway key.
    """

    def __init__(self, db_session: Session, cipher: CredentialCipher):
        self.db = db_session
        self.cipher = cipher

    def upsert(
        self,
        owner_id: int,
        tenant_id: str,
        tenant_name: Optional[str],
        bundle: TokenBundle,
        is_system_wide: bool = False,
    ) -> RecordSummary:
        """
        Seal and store a bundle, updating the existing row for the key.

        Args:
            owner_id: Owning user id
            tenant_id: Xero tenant id
            tenant_name: Xero organization name (display only)
            bundle: Token bundle to seal
            is_system_wide: Whether this is the shared credential

        Returns:
            RecordSummary (no tokens)

        Raises:
            CredentialStoreError: If the write fails
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")

        sealed = self.cipher.seal(bundle)
        now = datetime.now(timezone.utc)

        insert = self._insert_for_dialect()
        stmt = insert(XeroConnection.__table__).values(
            user_id=owner_id,
            tenant_id=tenant_id,
            tenant_name=tenant_name,
            encrypted_tokens=sealed.ciphertext,
            encryption_iv=sealed.iv,
            encryption_tag=sealed.tag,
            is_system_connection=is_system_wide,
            last_synced=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "tenant_id"],
            set_={
                "tenant_name": stmt.excluded.tenant_name,
                "encrypted_tokens": stmt.excluded.encrypted_tokens,
                "encryption_iv": stmt.excluded.encryption_iv,
                "encryption_tag": stmt.excluded.encryption_tag,
                "is_system_connection": stmt.excluded.is_system_connection,
                "last_synced": stmt.excluded.last_synced,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "Failed to store Xero credential",
                extra={"owner_id": owner_id, "tenant_id": tenant_id, "error_type": type(exc).__name__},
            )
            raise CredentialStoreError("Failed to store Xero credential") from exc

        row = self._get_row(owner_id, tenant_id)

        CredentialAuditLogger(owner_id).log(
            event_type=AuditEventType.CREDENTIAL_STORED,
            tenant_id=tenant_id,
            tenant_name=tenant_name,
            metadata={"is_system_wide": is_system_wide},
        )

        return self._summary(row)

    def find(self, owner_id: int, tenant_id: Optional[str] = None) -> Optional[CredentialRecord]:
        """
        Get an owner's credential, opened for use.

        Args:
            owner_id: Owning user id
            tenant_id: Specific Xero tenant; omitted means most recently synced

        Returns:
            CredentialRecord, or None when the owner has not connected

        Raises:
            IntegrityError: If the stored bundle fails verification
        """
        stmt = select(XeroConnection).where(XeroConnection.user_id == owner_id)
        if tenant_id:
            stmt = stmt.where(XeroConnection.tenant_id == tenant_id)
        row = self._first_most_recent(stmt)
        return self._open(row) if row is not None else None

    def find_system_wide(self) -> Optional[CredentialRecord]:
        """Get the shared credential used by unprivileged callers."""
        stmt = select(XeroConnection).where(XeroConnection.is_system_connection.is_(True))
        row = self._first_most_recent(stmt)
        return self._open(row) if row is not None else None

    def system_summary(self) -> Optional[RecordSummary]:
        """Metadata for the shared credential without opening it."""
        stmt = select(XeroConnection).where(XeroConnection.is_system_connection.is_(True))
        row = self._first_most_recent(stmt)
        return self._summary(row) if row is not None else None

    def remove(self, owner_id: int, tenant_id: str) -> bool:
        """
        Hard-delete an owner's credential for one tenant.

        Returns:
            True if a row was removed
        """
        stmt = delete(XeroConnection).where(
            XeroConnection.user_id == owner_id,
            XeroConnection.tenant_id == tenant_id,
        )
        removed = self._delete(stmt)
        if removed:
            CredentialAuditLogger(owner_id).log(
                event_type=AuditEventType.CREDENTIAL_REVOKED,
                tenant_id=tenant_id,
                metadata={"reason": "disconnect"},
            )
        return removed

    def remove_system_wide(self) -> bool:
        """Hard-delete the shared credential(s). Returns True if any row was removed."""
        is_system = XeroConnection.is_system_connection.is_(True)
        doomed = self.db.execute(
            select(XeroConnection.user_id, XeroConnection.tenant_id, XeroConnection.tenant_name)
            .where(is_system)
        ).all()
        removed = self._delete(delete(XeroConnection).where(is_system))
        if removed:
            for owner_id, tenant_id, tenant_name in doomed:
                CredentialAuditLogger(owner_id).log(
                    event_type=AuditEventType.CREDENTIAL_REVOKED,
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    metadata={"reason": "system_disconnect"},
                )
        return removed

    def list_summaries(self, owner_id: int) -> List[RecordSummary]:
        """
        List an owner's connections, newest first.

        SECURITY: Returns metadata only, no token values.
        """
        stmt = (
            select(XeroConnection)
            .where(XeroConnection.user_id == owner_id)
            .order_by(XeroConnection.last_synced.desc(), XeroConnection.id.desc())
        )
        return [self._summary(row) for row in self.db.execute(stmt).scalars().all()]

    def _insert_for_dialect(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect]
        except KeyError:
            raise CredentialStoreError(f"Unsupported database dialect for upsert: {dialect}") from None

    def _get_row(self, owner_id: int, tenant_id: str) -> XeroConnection:
        stmt = select(XeroConnection).where(
            XeroConnection.user_id == owner_id,
            XeroConnection.tenant_id == tenant_id,
        )
        # Bypass the identity map so the row reflects the upsert just committed
        stmt = stmt.execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one()

    def _first_most_recent(self, stmt) -> Optional[XeroConnection]:
        stmt = (
            stmt.order_by(XeroConnection.last_synced.desc(), XeroConnection.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().first()

    def _delete(self, stmt) -> bool:
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise CredentialStoreError("Failed to remove Xero credential") from exc
        return result.rowcount > 0

    def _open(self, row: XeroConnection) -> CredentialRecord:
        bundle = self.cipher.open(SealedBundle(
            ciphertext=row.encrypted_tokens,
            iv=row.encryption_iv,
            tag=row.encryption_tag,
        ))
        return CredentialRecord(
            id=row.id,
            owner_id=row.user_id,
            tenant_id=row.tenant_id,
            tenant_name=row.tenant_name,
            bundle=bundle,
            is_system_wide=bool(row.is_system_connection),
            last_synced_at=_as_utc(row.last_synced),
        )

    @staticmethod
    def _summary(row: XeroConnection) -> RecordSummary:
        return RecordSummary(
            id=row.id,
            tenant_id=row.tenant_id,
            tenant_name=row.tenant_name,
            is_system_wide=bool(row.is_system_connection),
            last_synced_at=_as_utc(row.last_synced),
            created_at=_as_utc(row.created_at),
        )
