"""
Database connection and session management.
Public session API over src.data.database_factory.
"""

from contextlib import AbstractContextManager

from sqlalchemy.orm import Session

from .database_factory import _db_factory
from .database_factory import setup_database as factory_setup_database


def get_session() -> AbstractContextManager[Session]:
    """Get a transactional session context manager."""
    return _db_factory.get_session()


def initialize_database(dsn: str | None = None) -> None:
    """Initialize database connection."""
    _db_factory.initialize(dsn)


def create_all_tables() -> None:
    """Create all database tables."""
    _db_factory.create_all_tables()


def drop_all_tables() -> None:
    """Drop all database tables."""
    _db_factory.drop_all_tables()


def health_check() -> bool:
    """Check database health."""
    return _db_factory.health_check()


def close_database() -> None:
    """Close database connections."""
    _db_factory.close()


def setup_database(dsn: str | None = None) -> None:
    """Set up database for application startup."""
    factory_setup_database(dsn)

