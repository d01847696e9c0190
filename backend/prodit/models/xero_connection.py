"""
XeroConnection model - encrypted storage for Xero token bundles.

SECURITY REQUIREMENTS:
- Token bundles are sealed with AES-256-GCM (PRODIT_TOKEN_KEY)
- Ciphertext, iv and tag are stored as separate base64 columns
- No plaintext tokens outside process memory

Lifecycle:
- Created on the first successful authorization-code exchange
- Updated in place on every refresh or reconnection (one row per owner/tenant)
- Deleted explicitly on disconnect; never expires on its own
"""

from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, String, Text, UniqueConstraint,
)

from prodit.db_base import Base
from prodit.models.base import TimestampMixin


class XeroConnection(Base, TimestampMixin):
    """
    Sealed Xero credential for one (user, Xero tenant) pair.

    SECURITY:
    - encrypted_tokens / encryption_iv / encryption_tag are NEVER logged
      or returned from the API
    - tenant_name is display-only and allowed in logs
    """

    __tablename__ = "xero_connections"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Surrogate primary key"
    )
    user_id = Column(
        Integer,
        nullable=False,
        comment="Owning user (from the session layer)"
    )
    tenant_id = Column(
        String(255),
        nullable=False,
        comment="Xero tenant (organization) id"
    )
    tenant_name = Column(
        String(255),
        nullable=True,
        comment="Xero organization display name (allowed in logs)"
    )

    # Sealed token bundle - NEVER log these values
    encrypted_tokens = Column(
        Text,
        nullable=False,
        comment="AES-256-GCM ciphertext of the token bundle (base64)"
    )
    encryption_iv = Column(
        String(255),
        nullable=False,
        comment="96-bit iv used for this ciphertext (base64)"
    )
    encryption_tag = Column(
        String(255),
        nullable=False,
        comment="128-bit authentication tag (base64)"
    )

    is_system_connection = Column(
        Boolean,
        default=False,
        nullable=False,
        comment="Shared credential used by all unprivileged callers"
    )
    last_synced = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When tokens were last written (connect or refresh)"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_xero_connections_user_tenant"),
        Index("idx_xero_connections_user_id", "user_id"),
        Index("idx_xero_connections_tenant_id", "tenant_id"),
        Index("idx_xero_connections_system", "is_system_connection"),
    )

    def __repr__(self) -> str:
        return (
            f"<XeroConnection(id={self.id}, user_id={self.user_id}, "
            f"tenant_id={self.tenant_id}, system={self.is_system_connection})>"
        )
