"""Database session management."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from songvault.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager.

    Hey future me - the catalog store is SINGLE-WRITER. For SQLite the engine gets a queue
    pool of exactly one connection and no overflow, so every session is serialized through
    that one connection. A second concurrent session waits pool_timeout seconds, then fails.
    scan_lock is the per-store mutex for whole scan passes (see LibraryScanOrchestrator).
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize database with settings."""
        self.settings = settings
        self.scan_lock = asyncio.Lock()

        engine_kwargs: dict[str, Any] = {"echo": settings.database.echo}

        is_sqlite = "sqlite" in settings.database.url
        if is_sqlite:
            engine_kwargs.update(
                {
                    "poolclass": AsyncAdaptedQueuePool,
                    "pool_size": 1,
                    "max_overflow": 0,
                    "pool_timeout": settings.database.pool_timeout,
                    "connect_args": {"timeout": 30},  # Wait up to 30s for file lock
                }
            )
        else:
            engine_kwargs.update(
                {
                    "pool_size": 1,
                    "max_overflow": 0,
                    "pool_timeout": settings.database.pool_timeout,
                    "pool_pre_ping": True,
                }
            )

        self._engine = create_async_engine(settings.database.url, **engine_kwargs)

        if is_sqlite:
            self._configure_sqlite()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def _configure_sqlite(self) -> None:
        """Enable foreign keys and driver-independent transaction control for SQLite.

        The sqlite3 driver emits its own BEGIN lazily, which breaks SAVEPOINT handling.
        We switch the driver to autocommit and emit BEGIN ourselves, so per-file
        session.begin_nested() savepoints roll back exactly what they should.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set SQLite pragmas on connection."""
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled foreign keys for SQLite connection")

        @event.listens_for(self._engine.sync_engine, "begin")
        def do_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Rollback on any exception - this is intentionally broad to ensure
                # transaction integrity. All exceptions are re-raised for proper handling.
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (startup and tests)."""
        from songvault.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (for testing only)."""
        from songvault.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
