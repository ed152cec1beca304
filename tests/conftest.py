"""Shared pytest fixtures.

Provides an in-memory database session, a cipher vault with a fixed test
key and a marketplace OAuth configuration pointing at fake endpoints.
"""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.oauth.cipher import CipherVault
from src.oauth.config import MarketplaceOAuthConfig
from src.server.database.session import Base

# Import all models to ensure they're registered with Base
from src.server.database.models import MarketplaceAccount, TenantPreferences  # noqa: F401

TEST_KEY = "0123456789abcdef0123456789abcdef"
OTHER_KEY = "fedcba9876543210fedcba9876543210"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """Create a test database session.

    Creates an in-memory SQLite database for testing that is
    destroyed after each test function completes.

    Yields:
        SQLAlchemy session for testing
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Keep connection alive for in-memory database
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def cipher() -> CipherVault:
    """Cipher vault with a fixed test key."""
    return CipherVault(TEST_KEY)


@pytest.fixture
def other_cipher() -> CipherVault:
    """Cipher vault with a different key, for key-rotation scenarios."""
    return CipherVault(OTHER_KEY)


@pytest.fixture
def oauth_config() -> MarketplaceOAuthConfig:
    """Marketplace OAuth config pointing at fake endpoints."""
    return MarketplaceOAuthConfig(
        authorize_url="https://marketplace.example.com/auth/oauth/authorize",
        token_url="https://marketplace.example.com/auth/oauth/token",
        redirect_uri="https://app.example.com/oauth/callback/",
    )
