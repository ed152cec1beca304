#!/usr/bin/env python3
"""Database initialization script for the credential vault.

This script:
1. Creates a fresh database with the vault schema
2. Stamps it with the latest Alembic revision
3. Validates the schema

Usage:
    python scripts/init_database.py [--force]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from src.server.config import PROJECT_ROOT, settings
from src.server.database.session import create_tables, init_engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = ["marketplace_accounts", "tenant_preferences"]


class DatabaseInitializer:
    """Manages initialization of a fresh vault database.

    Attributes:
        db_path: Path to database file
        force: If True, overwrite existing database
    """

    def __init__(self, db_path: Path, force: bool = False):
        self.db_path = db_path
        self.force = force

    def stamp_schema(self) -> None:
        """Mark the fresh database as being at the latest Alembic revision."""
        alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
        command.stamp(alembic_cfg, "head")
        logger.info("Database stamped at latest revision")

    def validate_schema(self) -> bool:
        """Validate that the vault tables and indexes exist.

        Returns:
            True if validation passes, False otherwise
        """
        inspector = inspect(init_engine())
        tables = inspector.get_table_names()

        checks_passed = 0
        checks_total = len(EXPECTED_TABLES) + 1

        for table in EXPECTED_TABLES:
            if table in tables:
                logger.info(f"✓ Table '{table}' exists")
                checks_passed += 1
            else:
                logger.error(f"✗ Table '{table}' missing")

        index_names = [
            idx["name"] for idx in inspector.get_indexes("marketplace_accounts")
        ] if "marketplace_accounts" in tables else []
        if "ix_marketplace_accounts_one_active" in index_names:
            logger.info("✓ One-active-account index exists")
            checks_passed += 1
        else:
            logger.error("✗ One-active-account index missing")

        logger.info(f"Validation: {checks_passed}/{checks_total} checks passed")
        return checks_passed == checks_total

    def run(self) -> bool:
        """Run the complete initialization process.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self.db_path.exists():
            if not self.force:
                logger.error(
                    "Database already exists. Use --force to overwrite, "
                    "or remove the database manually."
                )
                return False
            logger.warning(f"Removing existing database: {self.db_path}")
            self.db_path.unlink()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Database location: {self.db_path}")

        try:
            create_tables()
            self.stamp_schema()
        except Exception as e:
            logger.error(f"Schema creation failed: {e}")
            return False

        if not self.validate_schema():
            logger.error("Schema validation failed")
            return False

        logger.info("DATABASE INITIALIZED SUCCESSFULLY")
        return True


def main():
    """Main entry point for initialization script."""
    parser = argparse.ArgumentParser(
        description="Initialize a fresh credential vault database"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing database if present"
    )
    args = parser.parse_args()

    if not settings.is_sqlite:
        logger.error("init_database only manages SQLite databases; run alembic upgrade instead")
        sys.exit(1)

    initializer = DatabaseInitializer(db_path=settings.get_database_path(), force=args.force)
    sys.exit(0 if initializer.run() else 1)


if __name__ == "__main__":
    main()
