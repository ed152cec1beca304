"""
PKCE and CSRF state generation.

Both values come from the ``secrets`` module; predictable values here would
break the security of the whole authorization flow.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass

VERIFIER_BYTES = 32
STATE_BYTES = 16


@dataclass(frozen=True)
class PKCEPair:
    """
    PKCE verifier and its S256 challenge.

    Attributes:
        verifier: Random base64url string kept secret until token exchange
        challenge: base64url SHA-256 of the verifier, sent at authorize time
    """

    verifier: str
    challenge: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def challenge_for(verifier: str) -> str:
    """Compute the S256 code challenge for a verifier."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def new_state() -> str:
    """Generate a random 32 hex character CSRF state token."""
    return secrets.token_hex(STATE_BYTES)


def new_pkce() -> PKCEPair:
    """Generate a fresh PKCE verifier/challenge pair."""
    verifier = _b64url(secrets.token_bytes(VERIFIER_BYTES))
    return PKCEPair(verifier=verifier, challenge=challenge_for(verifier))
