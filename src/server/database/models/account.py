"""Marketplace account database model.

A marketplace account is one tenant-configured connection to the
marketplace: a client id/secret pair, the current token set and any
pending authorization attempt. Secret columns hold ``iv:payload``
ciphertext produced by the cipher vault, never plaintext.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
    true,
)

from src.server.database.session import Base


class MarketplaceAccount(Base):
    """Marketplace account with encrypted credentials.

    Attributes:
        id: Unique identifier (UUID as string)
        tenant_id: Owning tenant
        name: Human-readable name, unique per tenant
        client_id: Marketplace client id (plaintext)
        client_secret: Encrypted client secret
        access_token: Encrypted access token
        refresh_token: Encrypted refresh token
        token_expires_at: When the access token expires (naive UTC)
        token_scopes: Granted scopes
        oauth_state: Pending authorization state (plaintext)
        oauth_code_verifier: Encrypted PKCE verifier of the pending attempt
        is_active: Whether this is the tenant's active account
        created_at: Timestamp when account was created
        updated_at: Timestamp when account was last modified
    """

    __tablename__ = "marketplace_accounts"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)

    # Credentials
    client_id = Column(String, nullable=True)
    client_secret = Column(Text, nullable=True)

    # Token set
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    token_scopes = Column(Text, nullable=True)

    # Pending authorization
    oauth_state = Column(String, nullable=True, unique=True)
    oauth_code_verifier = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_marketplace_accounts_tenant_name"),
        # At most one active account per tenant
        Index(
            "ix_marketplace_accounts_one_active",
            "tenant_id",
            unique=True,
            sqlite_where=(is_active == true()),
            postgresql_where=(is_active == true()),
        ),
    )

    @property
    def has_pending_authorization(self) -> bool:
        """Whether an authorization attempt is awaiting its callback."""
        return bool(self.oauth_state)

    @property
    def is_authorized(self) -> bool:
        """Whether a token set is stored."""
        return bool(self.access_token)

    def __repr__(self) -> str:
        """String representation for debugging.

        Returns:
            Formatted string with account ID, tenant and name
        """
        return (
            f"<MarketplaceAccount(id={self.id}, tenant_id={self.tenant_id}, "
            f"name={self.name}, is_active={self.is_active})>"
        )
