"""
Pending authorization sessions.

An authorization session is the ``oauth_state`` / ``oauth_code_verifier``
pair stored on an account row between ``initiate`` and ``complete``. The
state is stored in plaintext because it is the lookup key on callback; the
PKCE verifier is encrypted with the cipher vault.

A session is consumed exactly once: it is cleared on a successful token
exchange (together with the token write) and on any failure that makes it
unusable.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.server.database.models.account import MarketplaceAccount

from .cipher import CipherVault

logger = logging.getLogger(__name__)


class AuthorizationSessionStore:
    """
    Stores and consumes pending authorization sessions on account rows.

    Attributes:
        db: SQLAlchemy database session
        cipher: Cipher vault used for the PKCE verifier
    """

    def __init__(self, db: Session, cipher: CipherVault):
        self.db = db
        self.cipher = cipher

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist authorization session: {e}")
            raise

    def begin(self, account: MarketplaceAccount, state: str, verifier: str) -> None:
        """
        Start a new authorization session, replacing any pending one.

        Args:
            account: Account being authorized
            state: CSRF state sent to the authorization server
            verifier: PKCE verifier (encrypted before storage)
        """
        if account.has_pending_authorization:
            logger.info(f"Replacing pending authorization for account {account.id}")

        # Overwrites the previous pair; its state stops resolving on commit
        account.oauth_state = state
        account.oauth_code_verifier = self.cipher.encrypt(verifier)
        self._commit()

        logger.info(
            f"Authorization session started for account {account.id}: "
            f"state={state[:8]}... verifier_length={len(verifier)}"
        )

    def find_by_state(self, state: Optional[str]) -> Optional[MarketplaceAccount]:
        """
        Look up the account whose pending session carries this state.

        Args:
            state: State received on callback (surrounding whitespace ignored)

        Returns:
            Account, or None if the state is empty or unknown
        """
        state = (state or "").strip()
        if not state:
            return None
        return (
            self.db.query(MarketplaceAccount)
            .filter(MarketplaceAccount.oauth_state == state)
            .first()
        )

    def read_verifier(self, account: MarketplaceAccount) -> str:
        """
        Decrypt the pending session's PKCE verifier.

        Raises:
            DecryptionError: If the stored verifier cannot be decrypted
        """
        return self.cipher.decrypt(account.oauth_code_verifier or "")

    def clear(self, account: MarketplaceAccount) -> None:
        """Discard the account's pending session, if any."""
        if not account.has_pending_authorization and not account.oauth_code_verifier:
            return
        account.oauth_state = None
        account.oauth_code_verifier = None
        self._commit()
        logger.info(f"Authorization session cleared for account {account.id}")

    def clear_all(self) -> int:
        """
        Discard every pending session.

        Returns:
            Number of accounts that had a pending session
        """
        try:
            count = (
                self.db.query(MarketplaceAccount)
                .filter(
                    (MarketplaceAccount.oauth_state.isnot(None))
                    | (MarketplaceAccount.oauth_code_verifier.isnot(None))
                )
                .update(
                    {"oauth_state": None, "oauth_code_verifier": None},
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to clear authorization sessions: {e}")
            raise

        self.db.expire_all()
        logger.info(f"Cleared {count} pending authorization session(s)")
        return count
