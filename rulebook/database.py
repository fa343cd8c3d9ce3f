"""Async database engine, session factory and FastAPI session dependency."""

from typing import Annotated, Any, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from rulebook.config import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""


def _engine_options(url: str) -> dict[str, Any]:
    settings = get_settings()
    if url.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "echo": settings.database_echo,
        }
    # SQLite keeps args minimal
    return {"echo": settings.database_echo}


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, **_engine_options(url))


engine = make_engine(get_settings().database_url)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session for the request."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def init_db() -> None:
    """Create tables that do not exist yet."""
    # Import models so they register with Base.metadata
    import rulebook.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine connection pool."""
    await engine.dispose()
