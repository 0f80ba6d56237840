from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ..core.config import Settings, settings as default_settings
from .models import Base


def create_engine_from_settings(settings: Optional[Settings] = None) -> AsyncEngine:
    """Create the async database engine."""
    settings = settings or default_settings
    if settings.TESTING:
        # Use in-memory SQLite for testing
        return create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={
                "check_same_thread": False,
            },
            poolclass=StaticPool,
        )
    if settings.DATABASE_URL.startswith("sqlite"):
        return create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    # PostgreSQL for production/development
    return create_async_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        echo=settings.DATABASE_ECHO,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory"""
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables (tests and local development; migrations handle production)"""
    # Registers the ORM tables on Base.metadata
    from ..infrastructure import orm  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_models(engine: AsyncEngine) -> None:
    from ..infrastructure import orm  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
