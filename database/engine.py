"""
Database Persistence Layer - Core Engine.

============================================================
MARKETPLACE STATE PERSISTENCE
============================================================

Provides the declarative base, engine creation, session
factory and transaction boundaries used by the marketplace
repository.

Requirements:
- SQLAlchemy 2.0 ORM
- Explicit transaction management
- Hard failures on persistence errors (DatabaseError)

Database URL comes from MARKETPLACE_DATABASE_URL and falls
back to a local SQLite file.

============================================================
"""

import os
import logging
from typing import Optional, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from dotenv import load_dotenv

from core.exceptions import DatabaseError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///marketplace.db"

# =============================================================
# DECLARATIVE BASE
# =============================================================


class Base(DeclarativeBase):
    """Declarative base for all marketplace ORM models."""


# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("MARKETPLACE_DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.debug(f"MARKETPLACE_DATABASE_URL not set, using default: {url}")
    return url


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine.

    SQLite URLs get no pool arguments; in-memory SQLite shares
    one connection so every session sees the same database.

    Args:
        database_url: Explicit URL, defaults to get_database_url()
        pool_size: Connections kept in pool (server databases)
        max_overflow: Max connections beyond pool_size
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
    else:
        engine = create_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def get_engine() -> Engine:
    """Get the process-wide engine, creating if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """
    Get a session factory.

    Without an engine, returns the cached process-wide factory.
    """
    global _SessionFactory

    if engine is not None:
        return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)

    return _SessionFactory


def reset_engine() -> None:
    """Dispose the process-wide engine and forget the factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def session_scope(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    Usage:
        with session_scope() as session:
            MarketplaceRepository(session).save_state(state)
            # Commits automatically at end

    Raises:
        DatabaseError: On SQLAlchemy failure or an amount too large
            for its column (original chained)
    """
    session = get_session_factory(engine)()
    try:
        yield session
        session.commit()
        logger.debug("Database transaction committed successfully")
    except (SQLAlchemyError, OverflowError) as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabaseError(f"Transaction failed: {e}", operation="commit", cause=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseError: If connection fails
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.info("Database connection verified successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseError(f"Cannot connect to database: {e}", operation="connect", cause=e) from e


def init_database(engine: Optional[Engine] = None) -> Engine:
    """
    Verify the connection and create every marketplace table.

    Returns:
        The engine used

    Raises:
        DatabaseError: If connection or table creation fails
    """
    engine = engine or get_engine()
    verify_database_connection(engine)

    # Import models to register them with Base
    from data_marketplace import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseError(f"Table creation failed: {e}", operation="create_all", cause=e) from e

    logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")
    return engine


__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "get_session_factory",
    "reset_engine",
    "session_scope",
    "verify_database_connection",
    "init_database",
]
