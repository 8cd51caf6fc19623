"""Async SQLAlchemy engine and session factory.

When DATABASE_URL is configured the application context calls
``create_session_factory()`` once at startup and hands the factory to
every Pg* repository.  Each repository method runs in its own short
transaction through ``session_scope()``:

  - commit on success, rollback on exception
  - IntegrityError (unique constraint) becomes DuplicateKeyError
  - any other SQLAlchemyError becomes PersistenceError

When DATABASE_URL is None the context wires in-memory repositories and
nothing in this module is touched except ``Base``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from lms.core.errors import DuplicateKeyError, PersistenceError

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def create_session_factory(
    database_url: str, *, echo: bool = False
) -> tuple[AsyncEngine, SessionFactory]:
    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info(
        "Database engine created: %s", engine.url.render_as_string(hide_password=True)
    )
    return engine, factory


@asynccontextmanager
async def session_scope(factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """One transaction per repository call."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            logger.info("Unique constraint rejected write: %s", exc.orig)
            raise DuplicateKeyError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("Database error")
            raise PersistenceError("Database operation failed") from exc
        except BaseException:
            await session.rollback()
            raise


async def check_database(engine: AsyncEngine) -> None:
    """Round-trip ``SELECT 1``.  Raises on failure; used by /ready."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
