"""
============================================================================
UPTIME PULSE - DATABASE MANAGER
============================================================================
Async engine and session management with transaction handling.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import StaticPool

from config.settings import DatabaseSettings
from database.models import AlertLog, Base, Monitor, MonitoringHistory
from exceptions import DatabaseConnectionError, DatabaseQueryError, InitializationError
from utils.helpers import utcnow
from utils.logger import get_logger


logger = get_logger("Database")


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and hands out transactional sessions.
    Constructed once at process start and injected into the Datastore.
    """

    def __init__(self, settings: DatabaseSettings):
        """
        Initialize database manager.

        Args:
            settings: Database settings section
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = settings.url

        logger.info(f"DatabaseManager initialized with URL: {self._mask_password(self.database_url)}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.

        Args:
            url: Database URL

        Returns:
            Masked URL
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _engine_options(self) -> Dict[str, Any]:
        """Pool options per backend."""
        options: Dict[str, Any] = {"echo": self.settings.echo}

        if self.database_url.startswith("sqlite"):
            if ":memory:" in self.database_url or self.database_url.endswith("sqlite+aiosqlite://"):
                # One shared connection, otherwise every session sees an empty database
                options["poolclass"] = StaticPool
                options["connect_args"] = {"check_same_thread": False}
            return options

        options.update(
            pool_size=self.settings.pool_size,
            max_overflow=self.settings.max_overflow,
            pool_timeout=self.settings.pool_timeout,
            pool_recycle=self.settings.pool_recycle,
            pool_pre_ping=self.settings.pool_pre_ping,
        )
        return options

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.
        Creates all tables if configured to.
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                self.engine = create_async_engine(self.database_url, **self._engine_options())

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                if self.settings.create_tables:
                    await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize database: {e}")
                raise InitializationError(
                    "Database initialization failed",
                    component="database",
                    cause=e
                ) from e

    async def create_tables(self) -> None:
        """
        Create all database tables.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        SQLAlchemy errors are re-raised as DatabaseConnectionError or
        DatabaseQueryError so callers deal with one hierarchy.

        Yields:
            AsyncSession instance

        Example:
            async with db_manager.session() as session:
                monitor = await session.get(Monitor, monitor_id)
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except OperationalError as e:
            await session.rollback()
            logger.error(f"Database connection error: {e}")
            raise DatabaseConnectionError(cause=e) from e
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Session error: {e}")
            raise DatabaseQueryError(str(e), cause=e) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (DatabaseConnectionError, DatabaseQueryError, InitializationError) as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def get_database_info(self) -> Dict[str, Any]:
        """
        Get database information and row counts.

        Returns:
            Dictionary with database info
        """
        try:
            async with self.session() as session:
                monitor_count = await session.scalar(select(func.count(Monitor.id)))
                history_count = await session.scalar(select(func.count(MonitoringHistory.id)))
                alert_count = await session.scalar(select(func.count(AlertLog.id)))

            return {
                "status": "connected",
                "database_url": self._mask_password(self.database_url),
                "monitors": monitor_count,
                "history": history_count,
                "alert_logs": alert_count,
                "checked_at": utcnow().isoformat()
            }
        except (DatabaseConnectionError, DatabaseQueryError, InitializationError) as e:
            logger.error(f"Failed to get database info: {e}")
            return {
                "status": "error",
                "error": str(e),
                "checked_at": utcnow().isoformat()
            }

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")
        self._is_initialized = False
