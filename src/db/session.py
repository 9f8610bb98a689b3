"""Async SQLAlchemy engine, session factory and schema bootstrap."""
import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import get_settings
from models import Base

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> dict[str, Any]:
    """
    Engine keyword arguments for a database URL.

    In-memory SQLite needs a single shared connection, otherwise every
    connection sees its own empty database. Server databases get pre-ping so
    connections dropped by the server are replaced transparently.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True}


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    **engine_options(settings.database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def create_tables(bind: AsyncEngine | None = None) -> None:
    """Create missing tables for every model. Existing tables are left untouched."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%s tables)", len(Base.metadata.tables))


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Unit of work per request: services only flush(), the commit happens once
    here. If anything raises, including a summary pipeline step after the
    artifact was flushed, the whole request is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
