"""Database engine and session plumbing."""

from token_vault.database.session import (
    normalize_database_url,
    create_db_engine,
    create_session_factory,
    init_db,
)

__all__ = [
    "normalize_database_url",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
