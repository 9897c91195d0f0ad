"""
Database Lifecycle

Owns the async SQLAlchemy engine and session factory for the process.

The DatabaseManager is created once in the FastAPI lifespan and stored on
``app.state.database``. It exposes:
- init(): create the engine and verify connectivity
- session(): a new AsyncSession
- health_check(): run ``SELECT 1``
- start_supervisor(): background loop that re-checks the connection and
  rebuilds the pool after a drop
- close(): stop the supervisor and dispose the engine
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tuitionhub.core.config import Settings, settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when a session is requested before init() was called."""


class DatabaseManager:
    """Process-wide storage client handle with a supervised reconnect loop."""

    def __init__(self, config: Settings | None = None):
        self.config = config or settings
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None
        self._supervisor: asyncio.Task | None = None
        self.is_healthy = False

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotInitializedError("Database engine is not initialized")
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        return create_async_engine(
            self.config.async_database_url,
            echo=self.config.database_echo,
            pool_size=self.config.database_pool_size,
            max_overflow=self.config.database_max_overflow,
            pool_pre_ping=True,
            connect_args={
                "timeout": self.config.database_connect_timeout,
                "command_timeout": self.config.database_command_timeout,
            },
        )

    async def init(self) -> None:
        """
        Create the engine and session factory, then verify the connection.

        Raises:
            Exception: If the first connectivity check fails. The caller
                decides whether that is fatal (production) or not.
        """
        if self._engine is None:
            self._engine = self._create_engine()
            self._session_maker = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

        self.is_healthy = await self.health_check(raise_on_error=True)
        logger.info("Database connection established")

    def session(self) -> AsyncSession:
        """Return a new session. Use as ``async with manager.session() as db``."""
        if self._session_maker is None:
            raise DatabaseNotInitializedError("Database session factory is not initialized")
        return self._session_maker()

    async def health_check(self, raise_on_error: bool = False) -> bool:
        """
        Run a trivial query against the database.

        Args:
            raise_on_error: Re-raise the driver error instead of returning False

        Returns:
            True if the database answered
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            if raise_on_error:
                raise
            logger.warning(f"Database health check failed: {e}")
            return False

    def start_supervisor(self) -> None:
        """Start the background reconnect loop (idempotent)."""
        if self._supervisor is not None and not self._supervisor.done():
            return
        self._supervisor = asyncio.create_task(self._supervise(), name="database-supervisor")

    async def _supervise(self) -> None:
        """
        Periodically check the connection; on failure dispose the pool and
        retry every ``database_reconnect_interval`` seconds until it recovers.
        """
        while True:
            await asyncio.sleep(self.config.database_health_check_interval)

            if await self.health_check():
                self.is_healthy = True
                continue

            self.is_healthy = False
            logger.error("Database connection lost. Attempting to reconnect...")

            while not self.is_healthy:
                await self.engine.dispose()
                await asyncio.sleep(self.config.database_reconnect_interval)
                self.is_healthy = await self.health_check()

            logger.info("Database connection re-established")

    async def close(self) -> None:
        """Stop the supervisor and dispose the engine."""
        if self._supervisor is not None:
            self._supervisor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._supervisor
            self._supervisor = None

        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None

        self.is_healthy = False
        logger.info("Database connection closed")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session from the application's DatabaseManager.

    Usage:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: DatabaseManager = request.app.state.database
    async with database.session() as session:
        yield session
