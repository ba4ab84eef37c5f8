"""
Database initialization and connection management.

This module provides functions for:
1. Creating the async engine and session factory
2. Creating the schema
3. Disposing of the engine on shutdown
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lingoloop.common.logger import app_logger
from lingoloop.database.base import Base
from lingoloop.database import models  # noqa: F401  registers tables on Base.metadata

logger = app_logger.getChild("database.init_db")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Get the global async engine instance."""
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker:
    if _session_factory is None:
        raise RuntimeError("Database engine not initialized. Call initialize_database() first.")
    return _session_factory


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``database_url``.

    In-memory SQLite URLs share a single connection so every session sees
    the same database.
    """
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, echo=echo)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def initialize_database(database_url: str, echo: bool = False, create_tables: bool = True) -> AsyncEngine:
    """
    Initialize the global engine, session factory and schema.

    Args:
        database_url: SQLAlchemy async URL
        echo: Whether to echo SQL statements
        create_tables: Create missing tables after connecting

    Returns:
        AsyncEngine instance
    """
    global _engine, _session_factory

    scheme = database_url.split("://", 1)[0]
    logger.info(f"Initializing database ({scheme})")

    try:
        engine = build_engine(database_url, echo=echo)
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        if create_tables:
            await create_schema(engine)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    _engine = engine
    _session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Database engine initialized successfully")
    return engine


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine closed")
