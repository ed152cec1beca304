"""Database models for the credential vault.

This module exports all SQLAlchemy ORM models used by the backend.

Models:
    MarketplaceAccount: Tenant-scoped marketplace connection with encrypted credentials
    TenantPreferences: Per-tenant settings, including the active account pointer
"""

from .account import MarketplaceAccount
from .tenant_preferences import TenantPreferences

__all__ = [
    "MarketplaceAccount",
    "TenantPreferences",
]
