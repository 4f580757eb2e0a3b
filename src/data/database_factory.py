"""
Centralized Database Factory - single source of truth for engine and session management.
"""

import logging
import re
import threading
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config.config import config
from src.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


class DatabaseFactory:
    """Singleton database factory ensuring single engine/session management"""

    _instance: "DatabaseFactory | None" = None
    _lock = threading.Lock()

    def __new__(cls) -> "DatabaseFactory":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if getattr(self, "_initialized", False):
            return

        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._dsn: str | None = None
        self._initialized = False

    def initialize(self, dsn: str | None = None) -> None:
        """Initialize database engine and session factory (idempotent)"""
        if self._initialized:
            logger.debug("Database factory already initialized")
            return

        with self._lock:
            if self._initialized:
                return

            self._dsn = dsn or config.database.dsn
            engine_kwargs = {
                "pool_size": config.database.pool_size,
                "max_overflow": config.database.max_overflow,
                "echo": config.database.echo,
                "pool_pre_ping": True,
            }

            # Handle SQLite vs PostgreSQL
            if self._dsn.startswith("sqlite"):
                engine_kwargs.update(
                    {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
                )
                engine_kwargs.pop("pool_size", None)
                engine_kwargs.pop("max_overflow", None)

            self._engine = create_engine(self._dsn, **engine_kwargs)
            self._setup_connection_events()

            self._session_factory = sessionmaker(
                bind=self._engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=config.persistence.expire_on_commit,
            )

            self._initialized = True
            logger.info("Database factory initialized with DSN: %s", self._mask_dsn(self._dsn))

    def _setup_connection_events(self) -> None:
        """Setup SQLAlchemy connection event listeners"""
        dsn = self._dsn

        @event.listens_for(self._engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            if dsn.startswith("sqlite"):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        @event.listens_for(self._engine, "connect")
        def set_postgresql_settings(dbapi_connection, connection_record):
            if dsn.startswith("postgresql"):
                cursor = dbapi_connection.cursor()
                cursor.execute("SET timezone TO 'UTC'")
                cursor.close()

    @staticmethod
    def _mask_dsn(dsn: str) -> str:
        """Mask password in DSN for logging"""
        return re.sub(r"(://[^:]+:)([^@]+)(@)", r"\1****\3", dsn)

    @property
    def engine(self) -> Engine:
        """Get database engine (lazy initialization)"""
        if not self._initialized:
            self.initialize()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get session factory (lazy initialization)"""
        if not self._initialized:
            self.initialize()
        return self._session_factory

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """One transaction per block: commit on success, roll back on any error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.debug("Session rolled back: %s", e)
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Check database connection health"""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except OperationalError as e:
            logger.error("Database health check failed: %s", e)
            return False

    def create_all_tables(self) -> None:
        """Create all database tables"""
        from .models import Base

        Base.metadata.create_all(bind=self.engine)
        logger.info("All database tables created successfully")

    def drop_all_tables(self) -> None:
        """Drop all database tables"""
        from .models import Base

        Base.metadata.drop_all(bind=self.engine)
        logger.warning("All database tables dropped")

    def close(self) -> None:
        """Close database connections and reset factory"""
        if self._engine:
            self._engine.dispose()
            logger.info("Database connections closed")

        self._engine = None
        self._session_factory = None
        self._dsn = None
        self._initialized = False


# Global factory instance
_db_factory = DatabaseFactory()


def setup_database(dsn: str | None = None) -> None:
    """Complete database setup for application startup"""
    logger.info("Setting up database...")

    _db_factory.initialize(dsn)
    _db_factory.create_all_tables()

    if not _db_factory.health_check():
        raise DatabaseConnectionError("Database health check failed")

    logger.info("Database setup completed successfully")
