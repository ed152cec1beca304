"""
Symmetric encryption of secrets at rest.

Client secrets, access/refresh tokens and PKCE verifiers are stored as
``hex(iv):hex(ciphertext)`` strings produced by AES-256-CBC with PKCS7
padding. A single process-wide key is resolved once at startup.

Key resolution order:
    1. Key passed explicitly
    2. ENCRYPTION_KEY environment variable
    3. ``ENCRYPTION_KEY=`` line in a known secrets file (development only)

A key shorter than 32 characters is a fatal configuration error.
"""

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import ConfigurationError, DecryptionError, MalformedCiphertextError
from .redaction import mask

logger = logging.getLogger(__name__)

# AES-256-CBC constants
KEY_SIZE = 32  # bytes used from the configured key
IV_SIZE = 16
BLOCK_SIZE_BITS = 128

MIN_KEY_LENGTH = 32

_ENV_LINE = re.compile(r"^ENCRYPTION_KEY=(.+)$", re.MULTILINE)


def _read_key_file(path: Path) -> Optional[str]:
    """Extract ENCRYPTION_KEY from a dotenv-style file, if present."""
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.debug(f"Could not read secrets file {path}: {e}")
        return None

    match = _ENV_LINE.search(content)
    if not match:
        return None
    return match.group(1).strip().strip("'\"")


def resolve_encryption_key(
    key: Optional[str] = None, key_files: Iterable[Path] = ()
) -> Tuple[str, str]:
    """
    Resolve the process-wide encryption key.

    Args:
        key: Explicitly configured key (takes precedence)
        key_files: Secrets files to search when the key is absent or too short

    Returns:
        Tuple of (key, source description)

    Raises:
        ConfigurationError: If no key of at least 32 characters is found
    """
    source = "argument"
    if not key:
        key = os.environ.get("ENCRYPTION_KEY")
        source = "environment"

    if not key or len(key) < MIN_KEY_LENGTH:
        for path in key_files:
            candidate = _read_key_file(Path(path))
            if candidate and len(candidate) >= MIN_KEY_LENGTH:
                logger.warning(
                    f"ENCRYPTION_KEY loaded from secrets file {path} "
                    f"(development fallback)"
                )
                key = candidate
                source = str(path)
                break

    if not key:
        raise ConfigurationError(
            "ENCRYPTION_KEY must be configured in the environment or a secrets file"
        )

    logger.info(f"ENCRYPTION_KEY resolved from {source}: {mask(key)}")

    if len(key) < MIN_KEY_LENGTH:
        raise ConfigurationError(
            f"ENCRYPTION_KEY must be at least {MIN_KEY_LENGTH} characters long "
            f"(current length: {len(key)})"
        )

    return key, source


class CipherVault:
    """
    AES-256-CBC encryptor for secrets at rest.

    Each encryption uses a fresh random IV, so encrypting the same value
    twice yields different ciphertexts. Instances are immutable and safe to
    share across requests.
    """

    def __init__(self, key: str):
        """
        Initialize vault with an already resolved key.

        Args:
            key: Key string of at least 32 characters

        Raises:
            ConfigurationError: If key is missing or too short
        """
        if not key or len(key) < MIN_KEY_LENGTH:
            raise ConfigurationError(
                f"ENCRYPTION_KEY must be at least {MIN_KEY_LENGTH} characters long "
                f"(current length: {len(key) if key else 0})"
            )
        self._key = key.encode("utf-8")[:KEY_SIZE]

    @classmethod
    def from_env(cls, key_files: Iterable[Path] = ()) -> "CipherVault":
        """
        Create a vault from the environment, falling back to secrets files.

        Args:
            key_files: Secrets files to search

        Returns:
            CipherVault instance

        Raises:
            ConfigurationError: If no valid key can be resolved
        """
        key, _ = resolve_encryption_key(key_files=key_files)
        return cls(key)

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret for storage.

        Args:
            plaintext: Value to encrypt (never logged)

        Returns:
            ``hex(iv):hex(ciphertext)``
        """
        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored secret.

        Args:
            ciphertext: ``hex(iv):hex(ciphertext)`` string

        Returns:
            Decrypted plaintext (handle with care)

        Raises:
            MalformedCiphertextError: If the value is not in ``iv:payload`` form
            DecryptionError: If the key is wrong or the data is corrupt
        """
        parts = ciphertext.split(":") if ciphertext else []
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise MalformedCiphertextError("Invalid encrypted text format")

        try:
            iv = bytes.fromhex(parts[0])
            payload = bytes.fromhex(parts[1])
        except ValueError as e:
            raise MalformedCiphertextError("Encrypted text is not valid hex") from e

        if len(iv) != IV_SIZE or len(payload) % IV_SIZE != 0:
            raise MalformedCiphertextError("Encrypted text has invalid length")

        try:
            decryptor = self._cipher(iv).decryptor()
            padded = decryptor.update(payload) + decryptor.finalize()

            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except ValueError as e:
            # Bad padding and invalid UTF-8 both mean wrong key or corrupt data
            raise DecryptionError(
                "Failed to decrypt value. Data may be corrupted or the "
                "encryption key changed."
            ) from e
