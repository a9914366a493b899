"""
Database session management with async SQLAlchemy.

Two stores are involved:
- the telephony CDR database (read-only, MySQL in production);
- the application store holding appeals and CRM contacts.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from callcenter.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for the application store (appeals, CRM)."""


class CdrBase(DeclarativeBase):
    """Declarative base for the read-only telephony CDR table.

    Kept apart from Base so create_all on the application store never
    attempts to create the telephony platform's table.
    """


class DatabaseManager:
    """Manages one engine and its session factory."""

    def __init__(self, database_url: str, **engine_options: Any) -> None:
        """Initialize database manager.

        Args:
            database_url: SQLAlchemy async database URL.
            engine_options: Extra keyword arguments for create_async_engine.
        """
        self._database_url = database_url
        self._engine_options = engine_options
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the database engine."""
        if self._engine is None:
            options: dict[str, Any] = {
                "echo": get_settings().debug,
                "pool_pre_ping": True,
            }
            if not self._database_url.startswith("sqlite"):
                options.update(pool_size=5, max_overflow=10, pool_recycle=3600)
            options.update(self._engine_options)
            self._engine = create_async_engine(self._database_url, **options)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Create a new database session context."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close the database engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


_cdr_manager: DatabaseManager | None = None
_app_manager: DatabaseManager | None = None


def get_cdr_database_manager() -> DatabaseManager:
    """Get the global CDR database manager instance."""
    global _cdr_manager
    if _cdr_manager is None:
        _cdr_manager = DatabaseManager(get_settings().cdr_database_url)
    return _cdr_manager


def get_app_database_manager() -> DatabaseManager:
    """Get the global application-store database manager instance."""
    global _app_manager
    if _app_manager is None:
        _app_manager = DatabaseManager(get_settings().app_database_url)
    return _app_manager


async def close_database_managers() -> None:
    """Dispose both global engines."""
    global _cdr_manager, _app_manager
    for manager in (_cdr_manager, _app_manager):
        if manager is not None:
            await manager.close()
    _cdr_manager = None
    _app_manager = None


__all__ = [
    "Base",
    "CdrBase",
    "DatabaseManager",
    "close_database_managers",
    "get_app_database_manager",
    "get_cdr_database_manager",
]
