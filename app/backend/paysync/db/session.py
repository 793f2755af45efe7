"""Database engine, session factory and declarative base."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from paysync.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


@lru_cache
def get_engine() -> AsyncEngine:
    """Return the process-wide async engine built from DATABASE_URL."""
    settings = get_settings()
    return create_async_engine(
        settings.DATABASE_URL.get_secret_value(),
        echo=False,
        future=True,
        pool_pre_ping=True,
    )


@lru_cache
def get_async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the session factory bound to the application engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency exposing the session factory.

    Background work (webhook side effects, admin-triggered processing) opens its
    own sessions through this factory, so tests override it to point at an
    isolated database.
    """
    return get_async_sessionmaker()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    session_factory = get_async_sessionmaker()
    async with session_factory() as session:
        yield session
