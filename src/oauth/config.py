"""
OAuth configuration for the marketplace integration.

This module provides configuration management for OAuth 2.0 authentication
with the marketplace. Configuration can be loaded from environment
variables or provided programmatically. It is resolved once at startup and
injected into the components that need it.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlencode

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TIMEOUT = 60
MIN_RECOMMENDED_TOKEN_TIMEOUT = 10


def normalize_redirect_uri(redirect_uri: str) -> str:
    """
    Normalize a redirect URI so it is identical at authorize and token time.

    Args:
        redirect_uri: Redirect URI as configured

    Returns:
        URI with surrounding whitespace and trailing slashes removed
    """
    return redirect_uri.strip().rstrip("/")


@dataclass
class MarketplaceOAuthConfig:
    """
    Configuration for marketplace OAuth 2.0.

    Client credentials are not part of this configuration: they are stored
    per account in the credential vault.

    Attributes:
        authorize_url: Marketplace OAuth authorization endpoint
        token_url: Marketplace OAuth token endpoint
        redirect_uri: Callback URI registered with the marketplace
        scopes: Scopes to request (omitted from the authorize URL if empty)
        token_timeout: Timeout in seconds for token endpoint calls
    """

    # Required - marketplace OAuth endpoints
    authorize_url: str
    token_url: str

    # Callback URI (required at request time, not at startup)
    redirect_uri: Optional[str] = None

    scopes: List[str] = field(default_factory=list)

    # The token endpoint is slow; keep this in the tens of seconds
    token_timeout: int = DEFAULT_TOKEN_TIMEOUT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.authorize_url:
            raise ConfigurationError("authorize_url cannot be empty")

        if not self.token_url:
            raise ConfigurationError("token_url cannot be empty")

        if self.token_timeout <= 0:
            raise ConfigurationError(
                f"token_timeout must be positive, got {self.token_timeout}"
            )
        if self.token_timeout < MIN_RECOMMENDED_TOKEN_TIMEOUT:
            logger.warning(
                f"token_timeout of {self.token_timeout}s is short; the token endpoint "
                f"can take tens of seconds (default {DEFAULT_TOKEN_TIMEOUT}s)"
            )

    def require_redirect_uri(self) -> str:
        """
        Get the normalized redirect URI.

        Returns:
            Redirect URI without trailing slashes

        Raises:
            ConfigurationError: If no redirect URI is configured
        """
        if not self.redirect_uri or not self.redirect_uri.strip():
            raise ConfigurationError(
                "MARKETPLACE_REDIRECT_URI not configured. "
                "Set it in the environment before starting authorization."
            )
        return normalize_redirect_uri(self.redirect_uri)

    def build_authorization_url(
        self, client_id: str, redirect_uri: str, state: str, code_challenge: str
    ) -> str:
        """
        Build the marketplace authorization URL for a PKCE attempt.

        Args:
            client_id: Account's client id
            redirect_uri: Normalized redirect URI
            state: CSRF state token
            code_challenge: PKCE S256 challenge

        Returns:
            Full authorization URL with query parameters
        """
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)

        return f"{self.authorize_url}?{urlencode(params)}"

    @classmethod
    def from_env(cls) -> "MarketplaceOAuthConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            MARKETPLACE_OAUTH_AUTHORIZE_URL: Authorization endpoint
            MARKETPLACE_OAUTH_TOKEN_URL: Token endpoint

        Optional environment variables:
            MARKETPLACE_REDIRECT_URI: Callback URI
            MARKETPLACE_OAUTH_SCOPES: Comma separated scopes
            MARKETPLACE_TOKEN_TIMEOUT: Token endpoint timeout in seconds (default: 60)

        Returns:
            MarketplaceOAuthConfig instance

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        authorize_url = os.environ.get("MARKETPLACE_OAUTH_AUTHORIZE_URL")
        token_url = os.environ.get("MARKETPLACE_OAUTH_TOKEN_URL")

        if not authorize_url:
            raise ConfigurationError(
                "MARKETPLACE_OAUTH_AUTHORIZE_URL must be configured in the environment"
            )
        if not token_url:
            raise ConfigurationError(
                "MARKETPLACE_OAUTH_TOKEN_URL must be configured in the environment"
            )

        scope_config = os.environ.get("MARKETPLACE_OAUTH_SCOPES", "")
        scopes = [s.strip() for s in scope_config.split(",") if s.strip()]

        timeout_config = os.environ.get(
            "MARKETPLACE_TOKEN_TIMEOUT", str(DEFAULT_TOKEN_TIMEOUT)
        )
        try:
            token_timeout = int(timeout_config)
        except ValueError as e:
            raise ConfigurationError(
                f"MARKETPLACE_TOKEN_TIMEOUT must be an integer, got {timeout_config!r}"
            ) from e

        return cls(
            authorize_url=authorize_url,
            token_url=token_url,
            redirect_uri=os.environ.get("MARKETPLACE_REDIRECT_URI"),
            scopes=scopes,
            token_timeout=token_timeout,
        )
