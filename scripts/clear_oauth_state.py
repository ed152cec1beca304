#!/usr/bin/env python3
"""
Clear pending OAuth authorization sessions.

Removes the stored state and PKCE verifier of every account with an
authorization in progress, or of a single account. Use it after rotating
ENCRYPTION_KEY (old verifiers can no longer be decrypted) or to unstick an
account whose authorization was abandoned. Token sets are not touched.

Usage:
    python scripts/clear_oauth_state.py
    python scripts/clear_oauth_state.py --account-id <id>
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.oauth.exceptions import MarketplaceOAuthError
from src.oauth.session_store import AuthorizationSessionStore
from src.server.database.session import get_session_factory
from src.server.services.vault_service import create_account_repository, get_cipher_vault

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    parser = argparse.ArgumentParser(
        description="Clear pending marketplace OAuth authorization sessions"
    )
    parser.add_argument(
        "--account-id",
        help="Only clear the session of this account",
    )
    args = parser.parse_args()

    db = get_session_factory()()
    try:
        store = AuthorizationSessionStore(db, get_cipher_vault())

        if args.account_id:
            account = create_account_repository(db).require_account(args.account_id)
            store.clear(account)
            print(f"Cleared pending authorization for account {account.id}")
        else:
            count = store.clear_all()
            print(f"Cleared {count} pending authorization session(s)")
        return 0

    except MarketplaceOAuthError as e:
        logger.error(f"Failed to clear OAuth state: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
