"""Tenant preferences database model.

Holds per-tenant settings for the marketplace integration, most
importantly the pointer to the tenant's active account.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String

from src.server.database.session import Base


class TenantPreferences(Base):
    """Per-tenant marketplace preferences.

    Attributes:
        tenant_id: Tenant identifier (primary key)
        active_account_id: Currently active marketplace account, if any
        updated_at: Timestamp when preferences were last modified
    """

    __tablename__ = "tenant_preferences"

    tenant_id = Column(String, primary_key=True)
    active_account_id = Column(
        String,
        ForeignKey("marketplace_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<TenantPreferences(tenant_id={self.tenant_id}, "
            f"active_account_id={self.active_account_id})>"
        )
