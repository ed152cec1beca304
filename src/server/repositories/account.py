"""Repository for marketplace account data access operations.

This module is the account credential vault: CRUD over marketplace
accounts, plus encrypted storage of client secrets and token sets,
per-field decryption for callers that need plaintext credentials, and
the tenant's active-account selection.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.oauth.cipher import CipherVault
from src.oauth.exceptions import (
    AccountNotFoundError,
    DecryptionError,
    DuplicateAccountNameError,
)
from src.oauth.token_client import TokenSet
from src.server.database.models.account import MarketplaceAccount
from src.server.database.models.tenant_preferences import TenantPreferences
from src.server.models.account import AccountCreate, AccountUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptedField:
    """Result of decrypting one stored secret.

    Distinguishes a field that was never set (``value`` and ``error`` both
    None) from one whose ciphertext could not be decrypted (``error`` set).

    Attributes:
        value: Decrypted plaintext, if available
        error: Reason the field could not be decrypted
    """

    value: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True unless decryption failed."""
        return self.error is None

    @property
    def present(self) -> bool:
        """True if a plaintext value is available."""
        return self.value is not None


@dataclass
class DecryptedCredentials:
    """Decrypted view of an account's credentials.

    Attributes:
        account_id: Account identifier
        client_id: Plaintext client id
        client_secret: Decrypted client secret result
        access_token: Decrypted access token result
        refresh_token: Decrypted refresh token result
        token_expires_at: Access token expiry (naive UTC)
        token_scopes: Granted scopes
    """

    account_id: str
    client_id: Optional[str]
    client_secret: DecryptedField = field(default_factory=DecryptedField)
    access_token: DecryptedField = field(default_factory=DecryptedField)
    refresh_token: DecryptedField = field(default_factory=DecryptedField)
    token_expires_at: Any = None
    token_scopes: Optional[str] = None

    @property
    def failed_fields(self) -> List[str]:
        """Names of fields whose ciphertext could not be decrypted."""
        return [
            name
            for name in ("client_secret", "access_token", "refresh_token")
            if not getattr(self, name).ok
        ]

    @property
    def has_token_set(self) -> bool:
        """True if a usable access token was decrypted."""
        return self.access_token.present


class AccountRepository:
    """Repository for marketplace account data access.

    Handles all database operations on marketplace accounts. Secrets are
    encrypted with the injected cipher vault before they are written and
    are only decrypted on explicit request.

    Attributes:
        db: SQLAlchemy database session
        cipher: Cipher vault used for secrets at rest
    """

    def __init__(self, db: Session, cipher: CipherVault):
        """Initialize account repository.

        Args:
            db: SQLAlchemy database session
            cipher: Cipher vault for encrypting and decrypting secrets
        """
        self.db = db
        self.cipher = cipher

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise

    def _decrypt_field(
        self, account: MarketplaceAccount, name: str, ciphertext: Optional[str]
    ) -> DecryptedField:
        if not ciphertext:
            return DecryptedField()
        try:
            return DecryptedField(value=self.cipher.decrypt(ciphertext))
        except DecryptionError as e:
            logger.error(
                f"Failed to decrypt {name} for account {account.id}: {e.code}"
            )
            return DecryptedField(error=e.code)

    def _get_preferences(self, tenant_id: str) -> TenantPreferences:
        preferences = self.db.get(TenantPreferences, tenant_id)
        if preferences is None:
            preferences = TenantPreferences(tenant_id=tenant_id)
            self.db.add(preferences)
        return preferences

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_account(self, tenant_id: str, data: AccountCreate) -> MarketplaceAccount:
        """Create a new, inactive marketplace account.

        Args:
            tenant_id: Owning tenant
            data: Account creation data

        Returns:
            Created account instance

        Raises:
            DuplicateAccountNameError: If the tenant already has an account with this name
        """
        if self.get_account_by_name(tenant_id, data.name):
            raise DuplicateAccountNameError(
                f'Account with name "{data.name}" already exists'
            )

        account = MarketplaceAccount(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=data.name,
            client_id=data.client_id,
            client_secret=self.cipher.encrypt(data.client_secret),
            is_active=False,
        )
        self.db.add(account)
        self._get_preferences(tenant_id)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"IntegrityError creating account: {e}")
            raise DuplicateAccountNameError(
                f'Account with name "{data.name}" already exists'
            ) from e
        self.db.refresh(account)

        logger.info(f"Created account: {account.id} - {account.name} (tenant {tenant_id})")
        return account

    def get_account(
        self, account_id: str, tenant_id: Optional[str] = None
    ) -> Optional[MarketplaceAccount]:
        """Get account by ID, optionally scoped to a tenant.

        Args:
            account_id: Account identifier
            tenant_id: If given, the account must belong to this tenant

        Returns:
            Account instance if found, None otherwise
        """
        query = self.db.query(MarketplaceAccount).filter(
            MarketplaceAccount.id == account_id
        )
        if tenant_id is not None:
            query = query.filter(MarketplaceAccount.tenant_id == tenant_id)
        return query.first()

    def require_account(
        self, account_id: str, tenant_id: Optional[str] = None
    ) -> MarketplaceAccount:
        """Get account by ID or raise.

        Raises:
            AccountNotFoundError: If the account does not exist or belongs to another tenant
        """
        account = self.get_account(account_id, tenant_id)
        if account is None:
            raise AccountNotFoundError(f"Account with ID {account_id} not found")
        return account

    def get_account_by_name(self, tenant_id: str, name: str) -> Optional[MarketplaceAccount]:
        """Get a tenant's account by name."""
        return (
            self.db.query(MarketplaceAccount)
            .filter(
                MarketplaceAccount.tenant_id == tenant_id,
                MarketplaceAccount.name == name,
            )
            .first()
        )

    def list_accounts(self, tenant_id: str) -> List[MarketplaceAccount]:
        """List a tenant's accounts, oldest first."""
        return (
            self.db.query(MarketplaceAccount)
            .filter(MarketplaceAccount.tenant_id == tenant_id)
            .order_by(MarketplaceAccount.created_at.asc(), MarketplaceAccount.name.asc())
            .all()
        )

    def update_account(
        self, tenant_id: str, account_id: str, data: AccountUpdate
    ) -> MarketplaceAccount:
        """Update an account's name and/or client credentials.

        Only fields present in ``data`` are changed. A new client secret is
        encrypted before storage.

        Args:
            tenant_id: Owning tenant
            account_id: Account identifier
            data: Fields to update

        Returns:
            Updated account instance

        Raises:
            AccountNotFoundError: If the account does not belong to the tenant
            DuplicateAccountNameError: If the new name is already taken
        """
        account = self.require_account(account_id, tenant_id)

        if data.name is not None and data.name != account.name:
            existing = self.get_account_by_name(tenant_id, data.name)
            if existing is not None and existing.id != account_id:
                raise DuplicateAccountNameError(
                    f'Account with name "{data.name}" already exists'
                )
            account.name = data.name

        if data.client_id is not None:
            account.client_id = data.client_id
        if data.client_secret is not None:
            account.client_secret = self.cipher.encrypt(data.client_secret)

        self._commit("update account")
        self.db.refresh(account)

        logger.info(f"Updated account: {account.id} (tenant {tenant_id})")
        return account

    def delete_account(self, tenant_id: str, account_id: str) -> None:
        """Delete an account, clearing the tenant's pointer if it referenced it.

        Raises:
            AccountNotFoundError: If the account does not belong to the tenant
        """
        account = self.require_account(account_id, tenant_id)

        preferences = self.db.get(TenantPreferences, tenant_id)
        if preferences is not None and preferences.active_account_id == account_id:
            preferences.active_account_id = None

        self.db.delete(account)
        self._commit("delete account")

        logger.info(f"Deleted account: {account_id} (tenant {tenant_id})")

    # ------------------------------------------------------------------
    # Active account selection
    # ------------------------------------------------------------------

    def set_active(self, tenant_id: str, account_id: str) -> MarketplaceAccount:
        """Make an account the tenant's only active account.

        Deactivating the others, activating the target and updating the
        tenant's pointer are committed as one transaction.

        Args:
            tenant_id: Owning tenant
            account_id: Account to activate

        Returns:
            Activated account

        Raises:
            AccountNotFoundError: If the account does not belong to the tenant
        """
        account = self.require_account(account_id, tenant_id)

        try:
            self.db.query(MarketplaceAccount).filter(
                MarketplaceAccount.tenant_id == tenant_id
            ).update({"is_active": False}, synchronize_session=False)
            self.db.query(MarketplaceAccount).filter(
                MarketplaceAccount.id == account_id
            ).update({"is_active": True}, synchronize_session=False)

            preferences = self._get_preferences(tenant_id)
            preferences.active_account_id = account_id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to set active account {account_id}: {e}")
            raise

        self.db.refresh(account)
        logger.info(f"Active account set: {account_id} (tenant {tenant_id})")
        return account

    def deactivate_all(self, tenant_id: str) -> None:
        """Leave the tenant without an active account."""
        try:
            self.db.query(MarketplaceAccount).filter(
                MarketplaceAccount.tenant_id == tenant_id
            ).update({"is_active": False}, synchronize_session=False)
            self._get_preferences(tenant_id).active_account_id = None
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to deactivate accounts for tenant {tenant_id}: {e}")
            raise

        self.db.expire_all()
        logger.info(f"All accounts deactivated (tenant {tenant_id})")

    def get_active_account(self, tenant_id: str) -> Optional[MarketplaceAccount]:
        """Get the tenant's active account, if any."""
        return (
            self.db.query(MarketplaceAccount)
            .filter(
                MarketplaceAccount.tenant_id == tenant_id,
                MarketplaceAccount.is_active.is_(True),
            )
            .first()
        )

    def get_active_account_id(self, tenant_id: str) -> Optional[str]:
        """Get the tenant's active-account pointer."""
        preferences = self.db.get(TenantPreferences, tenant_id)
        return preferences.active_account_id if preferences else None

    # ------------------------------------------------------------------
    # Credentials and token sets
    # ------------------------------------------------------------------

    def get_decrypted(self, account_id: str) -> DecryptedCredentials:
        """Decrypt an account's secrets.

        Each secret is decrypted independently; a field that cannot be
        decrypted is returned with ``error`` set and no value, without
        affecting the others or the stored row.

        Args:
            account_id: Account identifier

        Returns:
            DecryptedCredentials

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.require_account(account_id)

        credentials = DecryptedCredentials(
            account_id=account.id,
            client_id=account.client_id,
            client_secret=self._decrypt_field(account, "client_secret", account.client_secret),
            access_token=self._decrypt_field(account, "access_token", account.access_token),
            refresh_token=self._decrypt_field(account, "refresh_token", account.refresh_token),
            token_expires_at=account.token_expires_at,
            token_scopes=account.token_scopes,
        )

        if credentials.failed_fields:
            logger.warning(
                f"Account {account.id} has undecryptable fields: "
                f"{', '.join(credentials.failed_fields)}"
            )
        return credentials

    def save_token_set(
        self, account_id: str, token_set: TokenSet, keep_refresh_token: bool = False
    ) -> MarketplaceAccount:
        """Store a new token set, replacing the previous one.

        The write also clears any pending authorization: acquiring tokens
        always ends the authorization attempt.

        Args:
            account_id: Account identifier
            token_set: Token set from the token endpoint
            keep_refresh_token: Keep the stored refresh token and scopes when
                the token set carries none (refresh responses)

        Returns:
            Updated account

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.require_account(account_id)

        account.access_token = self.cipher.encrypt(token_set.access_token)
        if token_set.refresh_token:
            account.refresh_token = self.cipher.encrypt(token_set.refresh_token)
        elif not keep_refresh_token:
            account.refresh_token = None

        if token_set.scope or not keep_refresh_token:
            account.token_scopes = token_set.scope

        account.token_expires_at = token_set.expires_at.astimezone(timezone.utc).replace(
            tzinfo=None
        )
        account.oauth_state = None
        account.oauth_code_verifier = None

        self._commit("save token set")
        self.db.refresh(account)

        logger.info(
            f"Token set saved for account {account.id}: "
            f"expires_at={account.token_expires_at.isoformat()} "
            f"scopes={account.token_scopes}"
        )
        return account

    def clear_token_set(self, account_id: str) -> None:
        """Clear the stored token set, keeping client credentials."""
        account = self.require_account(account_id)
        account.access_token = None
        account.refresh_token = None
        account.token_expires_at = None
        account.token_scopes = None
        self._commit("clear token set")
        logger.info(f"Token set cleared for account {account_id}")

    def revoke(self, account_id: str) -> None:
        """Clear token set and any pending authorization in one write.

        The account and its client credentials are kept.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        account = self.require_account(account_id)
        account.access_token = None
        account.refresh_token = None
        account.token_expires_at = None
        account.token_scopes = None
        account.oauth_state = None
        account.oauth_code_verifier = None
        self._commit("revoke authorization")
        logger.info(f"Authorization revoked for account {account_id}")

    def describe(self, account: MarketplaceAccount) -> Dict[str, Any]:
        """Summarize an account for display.

        The client secret is decrypted; if that fails it is reported as None.

        Args:
            account: Account instance

        Returns:
            Dictionary with identity, credentials and OAuth status
        """
        secret = self._decrypt_field(account, "client_secret", account.client_secret)

        if account.access_token:
            oauth_status: Dict[str, Any] = {"authorized": True}
            if account.token_expires_at:
                oauth_status["expires_at"] = (
                    account.token_expires_at.replace(tzinfo=timezone.utc).isoformat()
                )
            if account.token_scopes:
                oauth_status["scopes"] = account.token_scopes
        else:
            oauth_status = {"authorized": False}

        return {
            "id": account.id,
            "name": account.name,
            "client_id": account.client_id,
            "client_secret": secret.value,
            "is_active": account.is_active,
            "oauth_status": oauth_status,
            "created_at": account.created_at,
            "updated_at": account.updated_at,
        }
