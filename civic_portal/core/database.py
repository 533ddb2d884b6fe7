"""Async SQLAlchemy engine, session factory and FastAPI session dependency."""
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from civic_portal.core.config import settings
from civic_portal.core.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

# Lazy engine initialization - create on first use to avoid import-time issues
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Get or create the database engine.

    SQLite uses NullPool; PostgreSQL uses the default queue pool with
    pre-ping so that recycled connections are validated.
    """
    global _engine
    if _engine is None:
        db_url = settings.database_url
        if db_url.startswith("sqlite"):
            _engine = create_async_engine(
                db_url,
                echo=settings.db_echo,
                connect_args={"check_same_thread": False},
                poolclass=NullPool,
            )
        else:
            _engine = create_async_engine(
                db_url,
                echo=settings.db_echo,
                pool_size=10,
                max_overflow=20,
                pool_recycle=1800,
                pool_pre_ping=True,
            )
        logger.info(f"Database engine created for {db_url.split('://')[0]}")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    Services only flush; the transaction is committed when the handler
    returns and rolled back on any exception.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create all tables (development and tests; production uses migrations)."""
    # Import models so they register on Base.metadata
    from civic_portal import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
