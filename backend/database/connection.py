from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
import logging

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_engine_from_settings(settings) -> AsyncEngine:
    """Create the async engine for the backend's Postgres database."""
    connect_args = {}
    if settings.DATABASE_SSL:
        connect_args["ssl"] = "require"

    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args=connect_args
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency to get database session"""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def ping(engine: AsyncEngine) -> bool:
    """Verify the database answers a trivial query"""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return False
