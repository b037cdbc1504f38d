"""
Database Package Initialization.

============================================================
MARKETPLACE PERSISTENCE LAYER
============================================================

Engine, session and transaction management for persisting
marketplace state. ORM models live in data_marketplace.models
and register with the shared Base.

REQUIRED:
- All transactions are explicit with commit/rollback
- Every failure raises DatabaseError

============================================================
"""

from .engine import (
    # Declarative base
    Base,
    DEFAULT_DATABASE_URL,

    # Engine creation
    get_database_url,
    create_database_engine,
    get_engine,
    reset_engine,

    # Session management
    get_session_factory,
    session_scope,

    # Database initialization
    verify_database_connection,
    init_database,
)

__all__ = [
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "reset_engine",
    "get_session_factory",
    "session_scope",
    "verify_database_connection",
    "init_database",
]
