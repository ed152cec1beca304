"""Tests for process-level settings."""

from unittest import mock

from src.server.config import PROJECT_ROOT, Settings


class TestSettings:
    """Tests for Settings."""

    @mock.patch.dict("os.environ", {}, clear=True)
    def test_defaults(self):
        settings = Settings()

        assert settings.is_sqlite
        assert settings.database_url.endswith("vault.db")
        assert settings.get_encryption_key_files() == [PROJECT_ROOT / ".env"]

    @mock.patch.dict(
        "os.environ",
        {"VAULT_DATABASE_URL_OVERRIDE": "postgresql://vault@db/vault"},
        clear=True,
    )
    def test_database_url_override(self):
        settings = Settings()

        assert settings.database_url == "postgresql://vault@db/vault"
        assert not settings.is_sqlite

    @mock.patch.dict(
        "os.environ",
        {"VAULT_ENCRYPTION_KEY_FILES": '["/etc/vault/.env", "config/.env"]'},
        clear=True,
    )
    def test_encryption_key_files(self):
        paths = Settings().get_encryption_key_files()

        assert str(paths[0]) == "/etc/vault/.env"
        assert paths[1] == PROJECT_ROOT / "config" / ".env"
