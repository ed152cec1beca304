"""Tests for the cipher vault."""

import logging
import re
from unittest import mock

import pytest

from src.oauth.cipher import CipherVault, resolve_encryption_key
from src.oauth.exceptions import (
    ConfigurationError,
    DecryptionError,
    MalformedCiphertextError,
)

KEY = "0123456789abcdef0123456789abcdef"


class TestCipherVault:
    """Tests for CipherVault encryption."""

    @pytest.fixture
    def vault(self):
        return CipherVault(KEY)

    @pytest.mark.parametrize(
        "plaintext",
        ["", "a", "secret", "x" * 16, "client-secret-with-üñíçødé", "y" * 1000],
    )
    def test_round_trip(self, vault, plaintext):
        """decrypt(encrypt(p)) returns p."""
        assert vault.decrypt(vault.encrypt(plaintext)) == plaintext

    def test_ciphertext_format(self, vault):
        """Ciphertext is hex IV, colon, hex payload."""
        ciphertext = vault.encrypt("secret")

        assert re.fullmatch(r"[0-9a-f]{32}:[0-9a-f]+", ciphertext)
        assert len(ciphertext.split(":")[1]) % 32 == 0

    def test_same_plaintext_encrypts_differently(self, vault):
        """A fresh IV is used for every encryption."""
        first = vault.encrypt("secret")
        second = vault.encrypt("secret")

        assert first != second
        assert first.split(":")[0] != second.split(":")[0]

    def test_plaintext_not_in_ciphertext(self, vault):
        """Ciphertext does not contain the plaintext."""
        ciphertext = vault.encrypt("plaintext-marker")
        assert "plaintext-marker" not in ciphertext

    def test_only_first_32_bytes_of_key_used(self):
        """Keys sharing the first 32 bytes are interchangeable."""
        short = CipherVault(KEY)
        long = CipherVault(KEY + "-extra-material")

        assert long.decrypt(short.encrypt("secret")) == "secret"

    def test_rejects_short_key(self):
        """Keys under 32 characters are a configuration error."""
        with pytest.raises(ConfigurationError, match="current length: 31"):
            CipherVault("k" * 31)

    def test_rejects_empty_key(self):
        with pytest.raises(ConfigurationError, match="at least 32 characters"):
            CipherVault("")

    @pytest.mark.parametrize(
        "ciphertext",
        [
            "",
            "no-colon-at-all",
            "a:b:c",
            ":abcdef",
            "00112233445566778899aabbccddeeff:",
            "zz112233445566778899aabbccddeeff:00112233445566778899aabbccddeeff",
            "0011:00112233445566778899aabbccddeeff",
            "00112233445566778899aabbccddeeff:001122",
        ],
    )
    def test_malformed_ciphertext(self, vault, ciphertext):
        """Anything not shaped like iv:payload is malformed."""
        with pytest.raises(MalformedCiphertextError):
            vault.decrypt(ciphertext)

    def test_malformed_is_a_decryption_error(self, vault):
        with pytest.raises(DecryptionError):
            vault.decrypt("garbage")

    def test_wrong_key_fails(self, vault):
        """Ciphertext from another key is reported as a decryption failure."""
        other = CipherVault("fedcba9876543210fedcba9876543210")
        ciphertext = other.encrypt("a secret of reasonable length")

        with pytest.raises(DecryptionError) as exc_info:
            vault.decrypt(ciphertext)

        assert "a secret" not in str(exc_info.value)

    def test_tampered_payload_fails(self, vault):
        """Flipping payload bytes breaks decryption."""
        iv, payload = vault.encrypt("secret").split(":")
        tampered = payload[:-2] + ("00" if payload[-2:] != "00" else "ff")

        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv}:{tampered}")


class TestResolveEncryptionKey:
    """Tests for encryption key resolution."""

    def test_explicit_key_wins(self):
        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": "e" * 40}):
            key, source = resolve_encryption_key("a" * 32)

        assert key == "a" * 32
        assert source == "argument"

    def test_environment_key(self):
        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": "e" * 40}):
            key, source = resolve_encryption_key()

        assert key == "e" * 40
        assert source == "environment"

    def test_falls_back_to_secrets_file(self, tmp_path):
        """ENCRYPTION_KEY line in a secrets file is used when env is unset."""
        env_file = tmp_path / ".env"
        env_file.write_text('OTHER=1\nENCRYPTION_KEY="' + "f" * 32 + '"\n')

        with mock.patch.dict("os.environ", {}, clear=True):
            key, source = resolve_encryption_key(key_files=[env_file])

        assert key == "f" * 32
        assert source == str(env_file)

    def test_secrets_file_replaces_short_env_key(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ENCRYPTION_KEY=" + "f" * 32 + "\n")

        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": "short"}):
            key, _ = resolve_encryption_key(key_files=[env_file])

        assert key == "f" * 32

    def test_missing_secrets_file_ignored(self, tmp_path):
        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": "e" * 32}):
            key, _ = resolve_encryption_key(key_files=[tmp_path / "missing.env"])

        assert key == "e" * 32

    def test_missing_key_raises(self):
        with mock.patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError, match="ENCRYPTION_KEY"):
                resolve_encryption_key()

    def test_short_key_raises_with_length(self):
        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": "s" * 10}, clear=True):
            with pytest.raises(ConfigurationError, match="current length: 10"):
                resolve_encryption_key()

    def test_key_never_logged(self, caplog):
        """Only a prefix and the length of the key are logged."""
        key = "abcd" + "Z" * 36
        with caplog.at_level(logging.DEBUG):
            resolve_encryption_key(key)

        assert key not in caplog.text
        assert "abcd...(len=40)" in caplog.text

    def test_from_env_builds_vault(self):
        with mock.patch.dict("os.environ", {"ENCRYPTION_KEY": KEY}):
            vault = CipherVault.from_env()

        assert CipherVault(KEY).decrypt(vault.encrypt("secret")) == "secret"
