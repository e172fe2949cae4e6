from typing import AsyncIterator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    async_sessionmaker,
    create_async_engine,
    AsyncSession,
    AsyncEngine,
)
from sqlalchemy.orm import declarative_base
from app.settings import settings

# stable names for constraints alembic autogenerate has to diff
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def _build_engine(url: str) -> AsyncEngine:
    """Pool sizing only applies to server databases; SQLite gets the defaults."""
    kwargs = {"echo": settings.DATABASE_ECHO, "future": True}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **kwargs)


engine = _build_engine(settings.DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session. Services commit or roll back themselves."""
    async with AsyncSessionLocal() as session:
        yield session


def create_worker_session() -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """
    Create a fresh async engine and session factory for the Celery resolver.

    Each task runs in its own asyncio.run loop, so it cannot share the
    module-level engine bound to the web process.

    Returns:
        Tuple of (session_factory, engine) - caller must dispose engine when done.
    """
    worker_engine = _build_engine(settings.DATABASE_WORKER_URL or settings.DATABASE_URL)
    worker_session = async_sessionmaker(
        worker_engine, expire_on_commit=False, autoflush=False
    )
    return worker_session, worker_engine
