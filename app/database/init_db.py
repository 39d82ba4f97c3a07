"""
Database initialization and connection management
Optimized for SQLite with proper connection pooling
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy import text

from ..config import get_settings
from .models import Base

logger = structlog.get_logger("inbox.database")


class DatabaseManager:
    """Database connection and session management"""

    def __init__(self, database_url: Optional[str] = None):
        self.settings = get_settings()
        self.database_url = database_url or self.settings.database_url
        self.engine = None
        self.session_factory = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    async def init_database(self):
        """Initialize database connection and create tables"""
        engine_kwargs = {"echo": self.settings.debug, "pool_pre_ping": True}

        if self.is_sqlite:
            # SQLite optimizations for better performance
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": 30,
            }
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 3600  # Recycle connections every hour

        self.engine = create_async_engine(self.database_url, **engine_kwargs)

        # Create session factory
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

            if self.is_sqlite:
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA synchronous=NORMAL"))
                await conn.execute(text("PRAGMA temp_store=MEMORY"))

        logger.info("Database initialized", url=self.database_url.split("@")[-1])

    @asynccontextmanager
    async def get_session(self):
        """Get database session as async context manager"""
        if not self.session_factory:
            await self.init_database()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self):
        """Close database connections"""
        if self.engine:
            await self.engine.dispose()


# Global database manager instance
db_manager = DatabaseManager()


async def init_database():
    """Initialize database - called on startup"""
    await db_manager.init_database()


def get_db_manager() -> DatabaseManager:
    """Dependency for FastAPI routes"""
    return db_manager
