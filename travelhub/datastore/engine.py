"""
Database engine setup and lifecycle.
Async SQLAlchemy engine; SQLite via aiosqlite by default.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from loguru import logger

from travelhub.datastore.models import Base


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        """Create the engine, the session factory and all tables."""
        if self.engine is not None:
            return

        self.engine = create_async_engine(self.url, echo=self.echo)

        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(f"Database initialized: {self.url}")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory for repositories and cache stores."""
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._session_factory

    async def close(self) -> None:
        """Dispose of the engine's connections."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
            logger.info("Database connections closed")
