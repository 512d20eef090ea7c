"""SQLAlchemy 2.x async database setup.

This module defines the async engine and session factory but does not
hard-code any connection credentials.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .errors import ProjectBoardError, StoreError

logger = logging.getLogger(__name__)


def create_engine(url: str | None = None, *, echo: bool | None = None, **engine_kwargs) -> AsyncEngine:
    """Build an async engine for ``url`` (defaults to ``DB_URL``).

    Extra keyword arguments go to ``create_async_engine`` unchanged.

    SQLite connections get ``PRAGMA foreign_keys=ON`` so junction inserts
    against a missing entity fail the same way they do on PostgreSQL.
    """
    url = url or settings.db.url
    echo = settings.db.echo if echo is None else echo

    kwargs: dict = {"echo": echo, "future": True}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.max_overflow,
            pool_pre_ping=True,
        )
    kwargs.update(engine_kwargs)

    new_engine = create_async_engine(url, **kwargs)

    if new_engine.dialect.name == "sqlite":
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine: AsyncEngine = create_engine()

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI-friendly async session dependency.

    Usage:
        async def endpoint(session: AsyncSession = Depends(get_session)):
            ...
    """

    async with AsyncSessionMaker() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any error.

    ``SQLAlchemyError`` is re-raised as ``StoreError``; application errors
    (not found, unauthorized, validation) pass through unchanged.
    """
    try:
        yield session
        await session.commit()
    except ProjectBoardError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Transaction rolled back: {e}", exc_info=True)
        raise StoreError(f"Database operation failed: {e}") from e
