"""SQLAlchemy database session management.

This module provides database engine configuration, session factory,
and a session generator for request-scoped database access.
"""

import logging
import sqlite3
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.server.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy declarative base for ORM models
Base = declarative_base()

# Global engine instance
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite.

    Args:
        dbapi_conn: Database API connection
        connection_record: Connection record
    """
    if not isinstance(dbapi_conn, sqlite3.Connection):
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine() -> Engine:
    """Initialize SQLAlchemy engine.

    For SQLite, creates the database directory if it doesn't exist.

    Returns:
        Configured SQLAlchemy engine
    """
    global _engine

    if _engine is not None:
        return _engine

    connect_args = {}
    if settings.is_sqlite:
        # Ensure database directory exists
        db_dir = settings.get_database_path().parent
        if not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created database directory: {db_dir}")
        connect_args["check_same_thread"] = False

    _engine = create_engine(
        settings.database_url,
        connect_args=connect_args,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.debug,  # Log SQL queries in debug mode
    )

    logger.info(f"Database engine initialized: {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get SQLAlchemy session factory.

    Returns:
        Configured sessionmaker instance
    """
    global _SessionLocal

    if _SessionLocal is None:
        engine = init_engine()
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine,
        )

    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Provide a request-scoped database session.

    The session is automatically closed after use.

    Yields:
        SQLAlchemy database session
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create all database tables.

    Creates tables for all models that inherit from Base.
    This should only be used in development; use Alembic migrations
    in production.
    """
    # Import models so they are registered with Base
    from src.server.database import models  # noqa: F401

    engine = init_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
