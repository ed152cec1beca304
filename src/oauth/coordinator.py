"""
OAuth coordinator for marketplace accounts.

This module is the main interface for OAuth operations. It drives the
per-account authorization state machine:

    UNCONFIGURED --(client credentials saved)--> CONFIGURED
    CONFIGURED --initiate--> PENDING
    PENDING --initiate--> PENDING (new state, old state invalid)
    PENDING --complete--> AUTHORIZED
    AUTHORIZED --revoke--> CONFIGURED

and ties together the session store, the token endpoint client and the
account credential vault.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from src.server.database.models.account import MarketplaceAccount
from src.server.repositories.account import AccountRepository

from .cipher import CipherVault
from .config import MarketplaceOAuthConfig
from .exceptions import (
    CredentialsRequiredError,
    DecryptionError,
    InvalidStateError,
    MarketplaceOAuthError,
    MissingParameterError,
    StateMismatchError,
    TokenNotAvailableError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from .pkce import new_pkce, new_state
from .session_store import AuthorizationSessionStore
from .token_client import CredentialValidation, TokenExchangeClient, TokenSet

logger = logging.getLogger(__name__)

# Refresh access tokens this many seconds before they expire
REFRESH_BUFFER_SECONDS = 300


class AccountState(str, Enum):
    """Authorization state of an account."""

    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    PENDING = "pending"
    AUTHORIZED = "authorized"


def state_of(account: MarketplaceAccount) -> AccountState:
    """
    Derive an account's authorization state from its stored fields.

    A pending re-authorization takes precedence over an existing token set.
    """
    if not account.client_id or not account.client_secret:
        return AccountState.UNCONFIGURED
    if account.has_pending_authorization:
        return AccountState.PENDING
    if account.is_authorized:
        return AccountState.AUTHORIZED
    return AccountState.CONFIGURED


@dataclass
class AuthorizationRequest:
    """
    Result of starting an authorization.

    Attributes:
        authorize_url: URL the user agent must be redirected to
        state: CSRF state embedded in the URL
    """

    authorize_url: str
    state: str


@dataclass
class AuthorizationStatus:
    """
    Locally known authorization status of an account.

    Attributes:
        authorized: Whether a token set is stored
        state: Account state machine position
        expires_at: Access token expiry (timezone-aware UTC)
        scopes: Granted scopes
    """

    authorized: bool
    state: AccountState
    expires_at: Optional[datetime] = None
    scopes: Optional[str] = None

    def to_dict(self) -> dict:
        result = {"authorized": self.authorized, "state": self.state.value}
        if self.expires_at:
            result["expires_at"] = self.expires_at.isoformat()
        if self.scopes:
            result["scopes"] = self.scopes
        return result


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OAuthCoordinator:
    """
    High-level coordinator for marketplace OAuth operations.

    One coordinator is created per request around a database session.

    Example:
        coordinator = OAuthCoordinator(db, cipher, config)
        request = coordinator.initiate(account_id, tenant_id)
        # redirect the user to request.authorize_url, then on callback:
        coordinator.complete(code, state)
    """

    def __init__(
        self,
        db: Session,
        cipher: CipherVault,
        config: MarketplaceOAuthConfig,
        token_client: Optional[TokenExchangeClient] = None,
    ):
        """
        Initialize OAuth coordinator.

        Args:
            db: SQLAlchemy database session
            cipher: Cipher vault for secrets at rest
            config: Marketplace OAuth configuration
            token_client: Token endpoint client (built from config if not provided)
        """
        self.config = config
        self.accounts = AccountRepository(db, cipher)
        self.sessions = AuthorizationSessionStore(db, cipher)
        self.token_client = token_client or TokenExchangeClient(
            config.token_url, timeout=config.token_timeout
        )

    def initiate(
        self, account_id: str, tenant_id: Optional[str] = None
    ) -> AuthorizationRequest:
        """
        Start authorization for an account.

        Generates fresh state and PKCE values, stores them as the account's
        pending session (replacing any previous one) and builds the
        authorize URL.

        Args:
            account_id: Account to authorize
            tenant_id: If given, the account must belong to this tenant

        Returns:
            AuthorizationRequest with the authorize URL and state

        Raises:
            AccountNotFoundError: If the account does not exist
            CredentialsRequiredError: If client id or secret is not configured
            ConfigurationError: If no redirect URI is configured
        """
        account = self.accounts.require_account(account_id, tenant_id)
        if not account.client_id or not account.client_secret:
            raise CredentialsRequiredError(
                "API credentials not configured. "
                "Please configure Client ID and Client Secret first."
            )

        redirect_uri = self.config.require_redirect_uri()

        state = new_state()
        pkce = new_pkce()
        self.sessions.begin(account, state, pkce.verifier)

        authorize_url = self.config.build_authorization_url(
            client_id=account.client_id,
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=pkce.challenge,
        )
        logger.info(
            f"Authorization initiated for account {account.id}: "
            f"redirect_uri={redirect_uri} challenge_method=S256"
        )
        return AuthorizationRequest(authorize_url=authorize_url, state=state)

    def complete(self, code: Optional[str], state: Optional[str]) -> None:
        """
        Finish authorization from the callback parameters.

        Args:
            code: Authorization code from the callback
            state: State from the callback

        Raises:
            MissingParameterError: If the code is empty
            InvalidStateError: If the state is empty or not pending for any account
            StateMismatchError: If the stored state differs from the supplied one
            ConfigurationError: If no redirect URI is configured
            DecryptionError: If the verifier or client secret is unreadable
                (the pending session is cleared)
            UpstreamRejectedError: If the token endpoint rejected the exchange
                (the session is cleared)
            UpstreamUnavailableError: If the token endpoint could not be
                reached (the session is kept)
        """
        code = (code or "").strip()
        state = (state or "").strip()
        if not code:
            raise MissingParameterError("code")
        if not state:
            raise InvalidStateError("Missing OAuth state parameter")

        account = self.sessions.find_by_state(state)
        if account is None:
            logger.warning(f"OAuth callback with unknown state {state[:8]}...")
            raise InvalidStateError("Invalid or expired OAuth state")
        if account.oauth_state != state:
            raise StateMismatchError("OAuth state does not match the pending authorization")

        redirect_uri = self.config.require_redirect_uri()

        try:
            verifier = self.sessions.read_verifier(account)
        except DecryptionError as e:
            logger.error(
                f"Failed to decrypt code verifier for account {account.id}: {e.code}"
            )
            self.sessions.clear(account)
            raise DecryptionError(
                "Failed to decrypt the pending authorization. Please restart authorization."
            ) from e

        credentials = self.accounts.get_decrypted(account.id)
        if not credentials.client_secret.ok:
            self.sessions.clear(account)
            raise DecryptionError(
                "Failed to decrypt client secret. Please re-enter your API credentials."
            )
        if not credentials.client_id or not credentials.client_secret.present:
            self.sessions.clear(account)
            raise CredentialsRequiredError("API credentials not configured")

        try:
            token_set = self.token_client.exchange_code(
                code=code,
                verifier=verifier,
                redirect_uri=redirect_uri,
                client_id=credentials.client_id,
                client_secret=credentials.client_secret.value,
            )
        except UpstreamUnavailableError:
            logger.warning(
                f"Token endpoint unavailable for account {account.id}; "
                f"keeping pending authorization"
            )
            raise
        except MarketplaceOAuthError as e:
            logger.warning(
                f"Code exchange failed for account {account.id} ({e.code}); "
                f"clearing pending authorization"
            )
            self.sessions.clear(account)
            raise

        self.accounts.save_token_set(account.id, token_set)
        logger.info(f"Authorization completed for account {account.id}")

    def status(
        self, account_id: str, tenant_id: Optional[str] = None
    ) -> AuthorizationStatus:
        """
        Report whether an account holds a token set.

        Purely local: no network call and no expiry check.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.accounts.require_account(account_id, tenant_id)
        if not account.is_authorized:
            return AuthorizationStatus(authorized=False, state=state_of(account))
        return AuthorizationStatus(
            authorized=True,
            state=state_of(account),
            expires_at=_as_utc(account.token_expires_at),
            scopes=account.token_scopes,
        )

    def revoke(self, account_id: str, tenant_id: Optional[str] = None) -> None:
        """
        Forget an account's token set and any pending authorization.

        Idempotent. This does NOT revoke the tokens on the marketplace side;
        the client credentials are kept.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.accounts.require_account(account_id, tenant_id)
        self.accounts.revoke(account.id)
        logger.info(f"Authorization revoked locally for account {account.id}")

    def validate_credentials(
        self, client_id: Optional[str], client_secret: Optional[str]
    ) -> CredentialValidation:
        """
        Check a client id/secret pair against the token endpoint.

        Never raises for upstream or configuration failures; those are
        reported as invalid with a stable ``error_code``.
        """
        try:
            return self.token_client.validate_credentials(client_id, client_secret)
        except MarketplaceOAuthError as e:
            logger.warning(f"Credential validation could not complete: {e.code}")
            return CredentialValidation(valid=False, message=str(e), error_code=e.code)

    def refresh(self, account_id: str, tenant_id: Optional[str] = None) -> TokenSet:
        """
        Refresh an account's token set with its stored refresh token.

        The stored refresh token is kept if the endpoint does not rotate it.

        Returns:
            New TokenSet

        Raises:
            AccountNotFoundError: If the account does not exist
            DecryptionError: If the refresh token or client secret is
                unreadable (the token set is cleared)
            TokenNotAvailableError: If no refresh token is stored
            CredentialsRequiredError: If client credentials are missing
            UpstreamRejectedError: If the endpoint rejected the refresh
                (the token set is cleared when the grant itself was rejected)
            UpstreamUnavailableError: If the endpoint could not be reached
        """
        account = self.accounts.require_account(account_id, tenant_id)
        credentials = self.accounts.get_decrypted(account.id)

        if not credentials.refresh_token.ok or not credentials.client_secret.ok:
            self.accounts.clear_token_set(account.id)
            raise DecryptionError(
                "Stored credentials could not be decrypted. Please re-authorize the account."
            )
        if not credentials.refresh_token.present:
            raise TokenNotAvailableError(
                "No refresh token available. Please authorize the account."
            )
        if not credentials.client_id or not credentials.client_secret.present:
            raise CredentialsRequiredError("API credentials not configured")

        try:
            token_set = self.token_client.refresh(
                refresh_token=credentials.refresh_token.value,
                client_id=credentials.client_id,
                client_secret=credentials.client_secret.value,
            )
        except UpstreamRejectedError as e:
            if e.rejects_grant:
                logger.warning(
                    f"Refresh token rejected for account {account.id}; clearing token set"
                )
                self.accounts.clear_token_set(account.id)
            raise

        self.accounts.save_token_set(account.id, token_set, keep_refresh_token=True)
        return token_set

    def get_access_token(
        self,
        account_id: str,
        tenant_id: Optional[str] = None,
        refresh_buffer_seconds: int = REFRESH_BUFFER_SECONDS,
    ) -> str:
        """
        Get a usable access token, refreshing it first if it expires soon.

        Args:
            account_id: Account identifier
            tenant_id: If given, the account must belong to this tenant
            refresh_buffer_seconds: Refresh when expiry is closer than this

        Returns:
            Decrypted access token

        Raises:
            TokenNotAvailableError: If the account is not authorized
            DecryptionError: If the stored access token is unreadable
        """
        account = self.accounts.require_account(account_id, tenant_id)
        if not account.is_authorized:
            raise TokenNotAvailableError(
                "Account is not authorized. Please complete authorization first."
            )

        expires_at = _as_utc(account.token_expires_at)
        threshold = datetime.now(timezone.utc) + timedelta(seconds=refresh_buffer_seconds)
        if expires_at is None or expires_at <= threshold:
            logger.info(f"Access token for account {account.id} expires soon, refreshing")
            return self.refresh(account.id).access_token

        credentials = self.accounts.get_decrypted(account.id)
        if not credentials.access_token.ok:
            raise DecryptionError(
                "Stored access token could not be decrypted. Please re-authorize the account."
            )
        return credentials.access_token.value

    def get_authorization_header(
        self, account_id: str, tenant_id: Optional[str] = None
    ) -> dict:
        """
        Get Authorization header dict for marketplace API requests.

        Returns:
            Dict with Authorization header: {"Authorization": "Bearer <token>"}
        """
        token = self.get_access_token(account_id, tenant_id)
        return {"Authorization": f"Bearer {token}"}
