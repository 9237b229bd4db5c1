"""SQLAlchemy base and the async session manager for the users database."""

from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DatabaseSessionManager:
    """Owns the async engine; hands out one transaction per session.

    ``init`` must be called before ``session``. Tests point it at a SQLite
    file and call ``create_all``; deployments run the Alembic migrations.
    """

    def __init__(self):
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized")
        return self._engine

    def init(
        self,
        database_url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        echo: bool = False,
    ) -> None:
        """Create the engine. Pool sizing applies to server databases only."""
        options: dict[str, Any] = {"echo": echo}
        if make_url(database_url).get_backend_name() != "sqlite":
            options.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
            )

        self._engine = create_async_engine(database_url, **options)
        self._session_maker = async_sessionmaker(
            self._engine, expire_on_commit=False, autoflush=False
        )

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_maker = None

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session; commit when the caller finishes, roll back on error."""
        if self._session_maker is None:
            raise RuntimeError("Database not initialized")

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
