"""Async SQLAlchemy database setup."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Database:
    """Async database connection manager.

    Owns the engine and session factory for the registry, game and media
    tables. All DAO operations go through the session() context manager.
    """

    def __init__(self, database_url: str):
        """Initialize database with connection URL.

        Args:
            database_url: SQLAlchemy database URL. Plain sqlite:/// URLs are
                upgraded to sqlite+aiosqlite:/// for async support.
        """
        is_sqlite = database_url.startswith("sqlite")
        if database_url.startswith("sqlite:///"):
            database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

        connect_args = {}
        if is_sqlite:
            # Wait on locked database files instead of failing immediately
            connect_args["timeout"] = 30

        self._url = database_url
        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=False,
            connect_args=connect_args,
        )
        self._async_session: async_sessionmaker[AsyncSession] = (
            async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine instance."""
        return self._engine

    @property
    def url(self) -> str:
        return self._url

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope around a series of operations.

        Commits on success and rolls back when the block raises.

        Yields:
            AsyncSession: An async SQLAlchemy session.
        """
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create all tables defined on Base.metadata if they don't exist.

        Deployments that manage the schema with Alembic can disable this via
        the auto_create_tables setting.
        """
        # Register ORM models on Base.metadata before create_all
        from butler.models import orm  # noqa: F401

        async with self._engine.begin() as conn:
            if conn.dialect.name == "sqlite" and ":memory:" not in self._url:
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA busy_timeout=30000"))
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self._engine.dispose()
