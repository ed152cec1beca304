"""
Token endpoint client for the marketplace OAuth integration.

This module talks to the marketplace token endpoint:
- Authorization code exchange (with PKCE verifier)
- Refresh token grant
- Client credentials grant, used only to validate a client id/secret pair

All requests are form-encoded POSTs authenticated with HTTP Basic auth.
Nothing is retried here; retry policy belongs to the caller.
"""

import logging
from base64 import b64encode
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import requests

from .config import DEFAULT_TOKEN_TIMEOUT, normalize_redirect_uri
from .exceptions import (
    ConfigurationError,
    MarketplaceOAuthError,
    MissingParameterError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .redaction import mask

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    """
    Token set returned by the token endpoint.

    Attributes:
        access_token: Short-lived access token for API calls
        expires_in: Token lifetime in seconds from issue time
        refresh_token: Long-lived token for obtaining new access tokens
        token_type: Token type (typically "Bearer")
        scope: Granted OAuth scopes
        issued_at: When the token set was received (timezone-aware UTC)
    """

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        """
        Calculate expiration datetime.

        Returns:
            Datetime when access token expires (timezone-aware UTC)
        """
        return self.issued_at + timedelta(seconds=self.expires_in)

    @classmethod
    def from_response(cls, data: dict) -> "TokenSet":
        """
        Create TokenSet from a token endpoint JSON body.

        Args:
            data: Parsed JSON response

        Returns:
            TokenSet instance

        Raises:
            KeyError: If access_token or expires_in is missing
            ValueError: If expires_in is not an integer
        """
        access_token = data["access_token"]
        if not access_token:
            raise KeyError("access_token")

        return cls(
            access_token=access_token,
            expires_in=int(data["expires_in"]),
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope") or None,
        )


@dataclass
class CredentialValidation:
    """
    Outcome of a client credentials check.

    Attributes:
        valid: Whether the marketplace accepted the credentials
        message: Human-readable explanation
        error_code: Stable error code when the check could not be completed
    """

    valid: bool
    message: Optional[str] = None
    error_code: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> dict:
        result = {"valid": self.valid}
        if self.message:
            result["message"] = self.message
        if self.error_code:
            result["error_code"] = self.error_code
        return result


def _require(**values: Optional[str]) -> None:
    """Raise MissingParameterError for the first empty value."""
    for name, value in values.items():
        if not value or not str(value).strip():
            raise MissingParameterError(name)


def _error_fields(response: requests.Response) -> Tuple[Optional[str], Optional[str]]:
    """Extract ``error`` and ``error_description`` from an error body."""
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    return body.get("error"), body.get("error_description")


class TokenExchangeClient:
    """
    Client for the marketplace token endpoint.

    Responsibilities:
    - Exchange authorization codes for token sets
    - Refresh token sets
    - Validate client credentials
    - Translate transport and OAuth errors into typed exceptions
    """

    def __init__(self, token_url: str, timeout: int = DEFAULT_TOKEN_TIMEOUT):
        """
        Initialize token client.

        Args:
            token_url: Marketplace token endpoint
            timeout: Request timeout in seconds (the endpoint is slow)
        """
        if not token_url:
            raise ConfigurationError("token_url cannot be empty")
        self.token_url = token_url
        self.timeout = timeout

    def _post(
        self, action: str, data: dict, client_id: str, client_secret: str
    ) -> requests.Response:
        # Prepare Basic auth header
        credentials = f"{client_id}:{client_secret}"
        auth_header = b64encode(credentials.encode()).decode()

        try:
            return requests.post(
                self.token_url,
                headers={
                    "Authorization": f"Basic {auth_header}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data=data,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.error(f"{action} timed out after {self.timeout}s")
            raise UpstreamUnavailableError(
                f"{action} timed out after {self.timeout}s"
            ) from e
        except requests.RequestException as e:
            logger.error(f"Network error during {action.lower()}: {e}")
            raise UpstreamUnavailableError(
                f"Network error during {action.lower()}: {e}"
            ) from e

    def _error_for(
        self, action: str, response: requests.Response
    ) -> MarketplaceOAuthError:
        status = response.status_code
        error, description = _error_fields(response)
        detail = description or error or f"HTTP {status}"
        logger.error(
            f"{action} failed: {status} - error={error} description={description}"
        )

        if status >= 500:
            return UpstreamUnavailableError(
                f"{action} failed: {detail} (HTTP {status})", status_code=status
            )
        return UpstreamRejectedError(
            f"{action} failed: {detail} (HTTP {status})",
            error=error,
            error_description=description,
            status_code=status,
        )

    def _raise_for_error(self, action: str, response: requests.Response) -> None:
        if not 200 <= response.status_code < 300:
            raise self._error_for(action, response)

    def _parse_token_set(self, action: str, response: requests.Response) -> TokenSet:
        try:
            token_set = TokenSet.from_response(response.json())
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise UpstreamRejectedError(
                f"{action} failed: invalid response from token endpoint",
                error="invalid_response",
                error_description=str(e),
                status_code=response.status_code,
            ) from e

        logger.info(
            f"{action} succeeded: type={token_set.token_type} "
            f"expires_in={token_set.expires_in} "
            f"has_refresh_token={token_set.refresh_token is not None} "
            f"scope={token_set.scope}"
        )
        return token_set

    def exchange_code(
        self,
        code: str,
        verifier: str,
        redirect_uri: str,
        client_id: str,
        client_secret: str,
    ) -> TokenSet:
        """
        Exchange an authorization code for a token set.

        Args:
            code: Code received on the OAuth callback
            verifier: PKCE verifier generated at authorize time
            redirect_uri: Redirect URI used at authorize time
            client_id: Account's client id
            client_secret: Account's decrypted client secret

        Returns:
            TokenSet with access (and usually refresh) token

        Raises:
            MissingParameterError: If any value is empty
            UpstreamRejectedError: If the endpoint returned an OAuth error
            UpstreamUnavailableError: On network errors, timeouts or 5xx
        """
        _require(
            code=code,
            verifier=verifier,
            redirect_uri=redirect_uri,
            client_id=client_id,
            client_secret=client_secret,
        )
        redirect_uri = normalize_redirect_uri(redirect_uri)

        logger.info(
            f"Exchanging authorization code for tokens: redirect_uri={redirect_uri} "
            f"code_length={len(code)} verifier_length={len(verifier)} "
            f"client_id={mask(client_id, 8)}"
        )

        action = "Authorization code exchange"
        response = self._post(
            action,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": verifier,
            },
            client_id,
            client_secret,
        )
        self._raise_for_error(action, response)
        return self._parse_token_set(action, response)

    def refresh(
        self, refresh_token: str, client_id: str, client_secret: str
    ) -> TokenSet:
        """
        Refresh a token set using a refresh token.

        Args:
            refresh_token: Decrypted refresh token
            client_id: Account's client id
            client_secret: Account's decrypted client secret

        Returns:
            New TokenSet (refresh_token is None if the endpoint did not rotate it)

        Raises:
            MissingParameterError: If any value is empty
            UpstreamRejectedError: If the endpoint returned an OAuth error
            UpstreamUnavailableError: On network errors, timeouts or 5xx
        """
        _require(
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
        )

        logger.info(f"Refreshing access token for client {mask(client_id, 8)}")

        action = "Token refresh"
        response = self._post(
            action,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            client_id,
            client_secret,
        )
        self._raise_for_error(action, response)
        return self._parse_token_set(action, response)

    def validate_credentials(
        self, client_id: str, client_secret: str
    ) -> CredentialValidation:
        """
        Check a client id/secret pair with a client credentials grant.

        Args:
            client_id: Client id to check
            client_secret: Client secret to check

        Returns:
            CredentialValidation; truthy only if the credentials are valid.
            401/403 answers are reported as invalid, not raised.

        Raises:
            MissingParameterError: If either value is empty
            ConfigurationError: If the endpoint answered 404 (misconfigured URL)
            UpstreamRejectedError: For any other OAuth error
            UpstreamUnavailableError: On network errors, timeouts or 5xx
        """
        _require(client_id=client_id, client_secret=client_secret)

        logger.info(
            f"Validating API credentials: token_url={self.token_url} "
            f"client_id={mask(client_id, 8)}"
        )

        action = "Credential validation"
        response = self._post(
            action, {"grant_type": "client_credentials"}, client_id, client_secret
        )
        status = response.status_code

        if 200 <= status < 300:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("access_token"):
                logger.info("API credentials validated successfully")
                return CredentialValidation(valid=True, message="Validated successfully")
            return CredentialValidation(
                valid=False, message="Invalid response from marketplace API"
            )

        if status in (401, 403):
            error, description = _error_fields(response)
            specific = description or error
            logger.warning(f"API credentials rejected: {status} - {specific}")
            if specific and specific != "invalid_client":
                return CredentialValidation(
                    valid=False, message=f"Invalid API credentials: {specific}"
                )
            return CredentialValidation(
                valid=False,
                message=(
                    "Invalid API credentials. "
                    "Please check your Client ID and Client Secret."
                ),
            )

        if status == 404:
            logger.error(f"Token endpoint not found: {self.token_url}")
            raise ConfigurationError(
                "OAuth token endpoint not found (HTTP 404). "
                "Please check MARKETPLACE_OAUTH_TOKEN_URL configuration."
            )

        raise self._error_for(action, response)
