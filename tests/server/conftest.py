"""Pytest fixtures for server-side tests.

This module provides repository fixtures on top of the shared in-memory
database, and a file-backed engine for tests that need real concurrent
connections.
"""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.oauth.cipher import CipherVault
from src.server.database.session import Base
from src.server.models.account import AccountCreate
from src.server.repositories.account import AccountRepository


@pytest.fixture
def repository(test_db: Session, cipher: CipherVault) -> AccountRepository:
    """Account repository over the in-memory test database."""
    return AccountRepository(test_db, cipher)


@pytest.fixture
def account_data() -> AccountCreate:
    """Valid account creation data."""
    return AccountCreate(
        name="Main shop",
        client_id="abc123",
        client_secret="super-secret-value",
    )


@pytest.fixture
def file_engine(tmp_path) -> Generator[Engine, None, None]:
    """SQLite engine backed by a temporary file.

    Each connection is independent, so sessions on different threads
    really contend for the database.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'vault.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_session_factory(file_engine: Engine) -> sessionmaker:
    """Session factory bound to the file-backed engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
