import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import MetaData, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by the settings."""
    url = make_url(settings.get_database_url())

    if url.get_backend_name() == "sqlite":
        # SQLite does not use a sized pool
        return create_async_engine(url, echo=settings.DB_ECHO)

    return create_async_engine(
        url,
        echo=settings.DB_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


class ConnectionProvider:
    """
    Supplies sessions on the directory store.

    Owns the engine (and therefore the pool); ``dispose`` must be called
    when the application stops.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConnectionProvider":
        engine = build_engine(settings)
        logger.info(f"Directory store: {engine.url.render_as_string(hide_password=True)}")
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Scoped session; always closed, uncommitted work is rolled back."""
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def check(self) -> bool:
        """Verify connectivity with a trivial round trip"""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def create_schema(self, metadata: Optional[MetaData] = None):
        """Create missing tables (development and tests only)."""
        if metadata is None:
            metadata = Base.metadata
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Directory schema created")

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Directory store connections released")
