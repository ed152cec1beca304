#!/usr/bin/env python3
"""
Replace an account's client secret.

The new secret is encrypted with the current ENCRYPTION_KEY before it is
stored. Use it when the marketplace secret was rotated, or when the stored
one can no longer be decrypted after a key change.

The secret is read from a prompt (or from --secret-stdin) so it never ends
up in shell history.

Usage:
    python scripts/update_client_secret.py <account-id>
    python scripts/update_client_secret.py <account-id> --client-id <new-id>
    echo "$SECRET" | python scripts/update_client_secret.py <account-id> --secret-stdin
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError

from src.oauth.exceptions import MarketplaceOAuthError
from src.oauth.redaction import mask
from src.server.database.session import get_session_factory
from src.server.models.account import AccountUpdate
from src.server.services.vault_service import create_account_repository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def read_secret(from_stdin: bool) -> str:
    """Read the new client secret without echoing it."""
    if from_stdin:
        return sys.stdin.readline().strip()
    return getpass.getpass("New client secret: ").strip()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 = success, 1 = failure)
    """
    parser = argparse.ArgumentParser(
        description="Re-encrypt and store a new client secret for an account"
    )
    parser.add_argument("account_id", help="Account to update")
    parser.add_argument("--client-id", help="Also replace the client id")
    parser.add_argument(
        "--secret-stdin",
        action="store_true",
        help="Read the secret from standard input instead of prompting",
    )
    args = parser.parse_args()

    try:
        update = AccountUpdate(
            client_id=args.client_id,
            client_secret=read_secret(args.secret_stdin),
        )
    except ValidationError as e:
        logger.error(f"Invalid input: {e.errors()[0]['msg']}")
        return 1

    db = get_session_factory()()
    try:
        repository = create_account_repository(db)
        account = repository.require_account(args.account_id)
        repository.update_account(account.tenant_id, account.id, update)

        print(f"Client secret updated for account {account.id} ({account.name})")
        print(f"Secret: {mask(update.client_secret)}")
        return 0

    except MarketplaceOAuthError as e:
        logger.error(f"Failed to update client secret: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
