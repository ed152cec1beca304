"""Credential vault service wiring.

Resolves process-wide OAuth dependencies once (the cipher vault and the
marketplace OAuth configuration) and builds request-scoped coordinators
and repositories around a database session.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from src.oauth.cipher import CipherVault
from src.oauth.config import MarketplaceOAuthConfig
from src.oauth.coordinator import OAuthCoordinator
from src.server.config import settings
from src.server.repositories.account import AccountRepository

logger = logging.getLogger(__name__)


# Global instances, resolved on first use
_cipher_vault: Optional[CipherVault] = None
_oauth_config: Optional[MarketplaceOAuthConfig] = None


def get_cipher_vault() -> CipherVault:
    """Get the global cipher vault instance.

    The encryption key is resolved once, from ``ENCRYPTION_KEY`` or the
    configured secrets files.

    Returns:
        CipherVault instance

    Raises:
        ConfigurationError: If no usable key is found
    """
    global _cipher_vault
    if _cipher_vault is None:
        _cipher_vault = CipherVault.from_env(settings.get_encryption_key_files())
    return _cipher_vault


def get_oauth_config() -> MarketplaceOAuthConfig:
    """Get the global marketplace OAuth configuration.

    Raises:
        ConfigurationError: If the OAuth endpoints are not configured
    """
    global _oauth_config
    if _oauth_config is None:
        _oauth_config = MarketplaceOAuthConfig.from_env()
        logger.info(
            f"Marketplace OAuth configured: token_url={_oauth_config.token_url} "
            f"redirect_uri={_oauth_config.redirect_uri or '<unset>'}"
        )
    return _oauth_config


def reset_vault_service() -> None:
    """Forget the resolved globals (used when configuration changes)."""
    global _cipher_vault, _oauth_config
    _cipher_vault = None
    _oauth_config = None


def create_account_repository(db: Session) -> AccountRepository:
    """Build an account repository for a request-scoped session."""
    return AccountRepository(db, get_cipher_vault())


def create_coordinator(db: Session) -> OAuthCoordinator:
    """Build an OAuth coordinator for a request-scoped session.

    Args:
        db: SQLAlchemy database session

    Returns:
        OAuthCoordinator bound to the session
    """
    return OAuthCoordinator(db, get_cipher_vault(), get_oauth_config())
