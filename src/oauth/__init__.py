"""
OAuth 2.0 module for the marketplace integration.

This module provides the Authorization Code flow with PKCE for
marketplace accounts, and the encryption used for every credential stored
at rest.

The orchestrating ``OAuthCoordinator`` lives in ``src.oauth.coordinator``
and is imported from there; it depends on the account repository, which in
turn depends on this package.

Public API:
    CipherVault: AES-256-CBC encryption of secrets at rest
    MarketplaceOAuthConfig: OAuth configuration management
    PKCEPair: PKCE verifier and challenge
    AuthorizationSessionStore: Pending authorization persistence
    TokenExchangeClient: Token endpoint client
    TokenSet: Token data structure
    CredentialValidation: Result of a credentials check

Exceptions:
    MarketplaceOAuthError: Base exception (every subclass carries a ``code``)
"""

from .cipher import CipherVault, resolve_encryption_key
from .config import MarketplaceOAuthConfig, normalize_redirect_uri
from .exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    CredentialsRequiredError,
    DecryptionError,
    DuplicateAccountNameError,
    InvalidStateError,
    MalformedCiphertextError,
    MarketplaceOAuthError,
    MissingParameterError,
    StateMismatchError,
    TokenNotAvailableError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .pkce import PKCEPair, challenge_for, new_pkce, new_state
from .session_store import AuthorizationSessionStore
from .token_client import CredentialValidation, TokenExchangeClient, TokenSet

__all__ = [
    # Encryption
    "CipherVault",
    "resolve_encryption_key",
    # Configuration
    "MarketplaceOAuthConfig",
    "normalize_redirect_uri",
    # PKCE / state
    "PKCEPair",
    "challenge_for",
    "new_pkce",
    "new_state",
    # Sessions
    "AuthorizationSessionStore",
    # Token endpoint
    "TokenExchangeClient",
    "TokenSet",
    "CredentialValidation",
    # Exceptions
    "MarketplaceOAuthError",
    "ConfigurationError",
    "CredentialsRequiredError",
    "InvalidStateError",
    "StateMismatchError",
    "DecryptionError",
    "MalformedCiphertextError",
    "UpstreamRejectedError",
    "UpstreamUnavailableError",
    "AccountNotFoundError",
    "MissingParameterError",
    "DuplicateAccountNameError",
    "TokenNotAvailableError",
]
