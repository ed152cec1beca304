"""Configuration management for the credential vault backend.

This module handles process-level configuration loaded from environment
variables, providing sensible defaults for development. OAuth endpoint
configuration lives in ``src.oauth.config``.
"""

import logging
import os
from pathlib import Path

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Project root (three levels up from this file: src/server/config.py)
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Application configuration settings.

    Attributes:
        app_name: Application name
        debug: Debug mode flag
        database_path: SQLite database file used when no database URL is set
        database_url_override: Full SQLAlchemy URL (e.g. PostgreSQL)
        encryption_key_files: Secrets files searched for ENCRYPTION_KEY when
            the environment variable is absent (relative to project root)
    """

    app_name: str = "Marketplace Credential Vault"
    debug: bool = False

    # Database configuration
    database_path: str = "~/.marketplace_vault/vault.db"
    database_url_override: str = ""

    # Development fallback for the encryption key
    encryption_key_files: list[str] = [".env"]

    class Config:
        """Pydantic configuration."""
        env_prefix = "VAULT_"
        case_sensitive = False

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self.database_url_override:
            return self.database_url_override
        expanded_path = os.path.expanduser(self.database_path)
        return f"sqlite:///{expanded_path}"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    def get_database_path(self) -> Path:
        """Get expanded database path as Path object.

        Returns:
            Resolved database file path
        """
        return Path(os.path.expanduser(self.database_path))

    def get_encryption_key_files(self) -> list[Path]:
        """Get secrets file candidates as absolute paths.

        Returns:
            Paths resolved against the project root
        """
        paths = []
        for name in self.encryption_key_files:
            path = Path(os.path.expanduser(name))
            paths.append(path if path.is_absolute() else PROJECT_ROOT / path)
        return paths


# Global settings instance
settings = Settings()
