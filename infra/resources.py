"""Infrastructure resources: the database engine and session factory.

This module is part of the infra layer and must not import from application features.
"""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


class DatabaseResource:
    """Database resource for dependency injection."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def init(self):
        """Initialize database connection."""
        if self.engine is not None:
            return self
        options = {"echo": self.echo}
        if not self.database_url.startswith("sqlite"):
            options.update(pool_pre_ping=True, pool_recycle=3600)
        self.engine = create_async_engine(self.database_url, **options)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return self

    def get_session(self) -> AsyncSession:
        """Get database session (synchronous accessor)."""
        if self.session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self.session_factory()

    async def shutdown(self):
        """Shutdown database connection."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
