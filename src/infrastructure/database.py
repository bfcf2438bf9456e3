"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O.

Every storage failure leaves this layer as ``PersistenceError``: repository
methods are wrapped with ``guarded`` and services commit through ``commit``
so callers never see a raw driver exception, and never see a silent default.
"""

from __future__ import annotations

import functools
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.config import settings
from src.domain.errors import PersistenceError

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=20,
    max_overflow=10,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


T = TypeVar("T")


def guarded(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise SQLAlchemy failures from *fn* as ``PersistenceError``."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{fn.__qualname__} failed: {exc}") from exc

    return wrapper


@guarded
async def commit(session: AsyncSession) -> None:
    """Commit, rolling back first if the commit itself fails."""
    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        raise
