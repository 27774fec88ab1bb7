"""
PostgreSQL async connection management using SQLAlchemy 2.0.

Engines are created lazily per event loop so the same manager works
from the API's loop and from scripts that spin up their own loops.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from pharmacy_usage.constants import (
    DEFAULT_DB_MAX_OVERFLOW,
    DEFAULT_DB_POOL_RECYCLE,
    DEFAULT_DB_POOL_SIZE,
    DEFAULT_DB_POOL_TIMEOUT,
)
from pharmacy_usage.utils.env_utils import parse_bool_env, parse_int_env

load_dotenv()

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """Database configuration from environment variables."""

    def __init__(self):
        # Set to false to run without PostgreSQL (sessions yield None)
        self.enabled = parse_bool_env("DATABASE_ENABLED", True)

        self.db_name = os.getenv("DATABASE_NAME", "pharmacy")
        self.db_user = os.getenv("DATABASE_USER", "postgres")
        self.db_password = os.getenv("DATABASE_PASSWORD", "")
        self.db_host = os.getenv("DATABASE_HOST", "localhost")
        self.db_port = parse_int_env("DATABASE_PORT", 5432)

        # Connection pool settings
        self.pool_size = parse_int_env("DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE)
        self.max_overflow = parse_int_env("DB_MAX_OVERFLOW", DEFAULT_DB_MAX_OVERFLOW)
        self.pool_timeout = parse_int_env("DB_POOL_TIMEOUT", DEFAULT_DB_POOL_TIMEOUT)
        self.pool_recycle = parse_int_env("DB_POOL_RECYCLE", DEFAULT_DB_POOL_RECYCLE)

        self.database_url = os.getenv(
            "DATABASE_URL",
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}",
        )

        self.echo_sql = parse_bool_env("DB_ECHO", False)


def mask_database_url(url: str) -> str:
    """Hide the password in a database URL for logging."""
    if "@" not in url:
        return url
    try:
        credentials, host = url.rsplit("@", 1)
        parts = credentials.split(":")
        if len(parts) >= 3:
            return f"{parts[0]}:{parts[1]}:****@{host}"
        return url
    except ValueError:
        return "[URL masked]"


class DatabaseManager:
    """
    Manages async PostgreSQL connections.

    Implements singleton pattern with per-event-loop resource management.
    """

    _instance: Optional["DatabaseManager"] = None
    _initialized: bool = False
    _shutdown: bool = False  # Prevents new connections after close_all()

    # Per-loop resources: maps loop_id -> resource
    _engines: Dict[int, AsyncEngine] = {}
    _session_factories: Dict[int, async_sessionmaker] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.config = DatabaseConfig()
        self._initialized = True

    def _get_loop_id(self) -> int:
        """Return the id of the running event loop, or 0 if none is running."""
        try:
            loop = asyncio.get_running_loop()
            return id(loop)
        except RuntimeError:
            return 0

    def _setup_engine_for_loop(self, loop_id: int) -> None:
        """Initialize engine and session factory for the given event loop."""
        if self._shutdown:
            logger.debug(f"Skipping engine setup for loop {loop_id} - shutdown in progress")
            return

        if not self.config.enabled:
            logger.debug(f"Skipping engine setup for loop {loop_id} - database disabled")
            return

        if loop_id in self._engines:
            return

        engine = self._create_engine()
        self._engines[loop_id] = engine
        self._session_factories[loop_id] = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(
            f"Database engine initialized for loop {loop_id}: "
            f"pool_size={self.config.pool_size}"
        )

    def _create_engine(self) -> AsyncEngine:
        """Create engine from the configured connection URL."""
        logger.info(f"Creating database connection: {mask_database_url(self.config.database_url)}")
        return create_async_engine(
            self.config.database_url,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout,
            pool_recycle=self.config.pool_recycle,
            echo=self.config.echo_sql,
        )

    async def get_engine_async(self) -> Optional[AsyncEngine]:
        """Get the async engine, initializing for the current event loop if necessary."""
        if not self.config.enabled:
            return None
        loop_id = self._get_loop_id()
        if loop_id not in self._engines:
            self._setup_engine_for_loop(loop_id)
        return self._engines.get(loop_id)

    async def test_connection(self, timeout: float = 15.0) -> bool:
        """
        Test database connectivity with timeout.

        Args:
            timeout: Maximum time to wait for connection test (seconds)

        Returns:
            True if connection successful (or database disabled), False otherwise
        """
        if not self.config.enabled:
            logger.info("Database disabled - skipping connection test")
            return True

        engine = await self.get_engine_async()
        if not engine:
            logger.warning("No database engine available")
            return False

        try:
            async with asyncio.timeout(timeout):
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            logger.info("Database connection test successful")
            return True
        except asyncio.TimeoutError:
            logger.error(f"Database connection test timed out after {timeout}s")
            return False
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[Optional[AsyncSession], None]:
        """
        Get an async session with automatic commit/rollback.

        Returns None if database is disabled.

        Usage:
            async with db.session() as session:
                if session:
                    result = await session.execute(...)

        The session will:
        - Commit on successful exit
        - Rollback on exception
        - Always close after use
        """
        if not self.config.enabled:
            yield None
            return

        loop_id = self._get_loop_id()
        if loop_id not in self._session_factories:
            self._setup_engine_for_loop(loop_id)

        if loop_id not in self._session_factories:
            yield None
            return

        session = self._session_factories[loop_id]()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self):
        """
        Create all tables (for development/testing).

        In production, use migrations instead.
        """
        from .models import Base

        engine = await self.get_engine_async()
        if engine is None:
            logger.warning("Database disabled - tables not created")
            return
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def drop_tables(self):
        """Drop all tables (for testing only)."""
        from .models import Base

        engine = await self.get_engine_async()
        if engine is None:
            logger.warning("Database disabled - tables not dropped")
            return
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics for monitoring.

        Returns:
            Dictionary with pool stats per event loop.
        """
        stats: Dict[str, Any] = {
            "pools_count": len(self._engines),
            "shutdown_mode": self._shutdown,
            "pools": {},
        }

        for loop_id, engine in self._engines.items():
            try:
                pool = engine.pool
                stats["pools"][str(loop_id)] = {
                    "size": pool.size(),
                    "checked_out": pool.checkedout(),
                    "overflow": pool.overflow(),
                    "checked_in": pool.checkedin(),
                }
            except Exception as e:
                stats["pools"][str(loop_id)] = {"error": str(e)}

        return stats

    async def close_all(self):
        """
        Dispose engines across all event loops.

        Only the current loop's engine can be awaited; other loops'
        references are dropped.
        """
        self._shutdown = True

        current_loop_id = self._get_loop_id()
        if current_loop_id in self._engines:
            try:
                await self._engines[current_loop_id].dispose()
            except Exception as e:
                logger.debug(f"Error disposing engine: {e}")

        self._engines.clear()
        self._session_factories.clear()
        self._initialized = False

        logger.info("All database connections closed")


# Global database manager instance
db = DatabaseManager()


async def get_session() -> AsyncGenerator[Optional[AsyncSession], None]:
    """
    Dependency injection helper for FastAPI.

    Usage:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with db.session() as session:
        yield session
