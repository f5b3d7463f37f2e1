"""Database engine and session lifecycle."""

import os
import logging
from typing import Any, AsyncGenerator, Dict, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from . import models

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./donasiku.db"
ASYNCPG_SCHEME = "postgresql+asyncpg://"

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url() -> str:
    """DATABASE_URL with hosted ``postgres://`` URLs moved onto asyncpg."""
    configured = os.getenv("DATABASE_URL")
    if not configured:
        return DEFAULT_DATABASE_URL
    scheme, sep, rest = configured.partition("://")
    if sep and scheme in ("postgres", "postgresql"):
        return ASYNCPG_SCHEME + rest
    return configured


def _is_memory_sqlite(url: str) -> bool:
    return ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")


def _engine_options(url: str, pool_size: int, max_overflow: int) -> Dict[str, Any]:
    if _is_memory_sqlite(url):
        # One shared connection, otherwise each session gets an empty database
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": pool_size, "max_overflow": max_overflow, "pool_pre_ping": True}


def create_async_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Build the async engine for ``database_url`` (default: DATABASE_URL).

    File-backed SQLite keeps SQLAlchemy's default pool so concurrent
    sessions really use separate connections.
    """
    url = database_url or get_database_url()
    return sa_create_async_engine(url, echo=echo, **_engine_options(url, pool_size, max_overflow))


def get_async_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """Factory bound to ``engine``, or the one installed by :func:`init_db`."""
    if engine is None:
        if _session_factory is None:
            raise RuntimeError("init_db() must run before sessions are opened")
        return _session_factory
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True,
) -> AsyncEngine:
    """
    Install the process-wide engine.

    ``create_tables`` is for local runs and tests; deployed databases are
    built by the alembic migration.
    """
    global _engine, _session_factory

    engine = create_async_engine(database_url, echo=echo)
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)

    _engine = engine
    _session_factory = get_async_session_factory(engine)
    logger.info(f"Database ready ({engine.url.get_backend_name()})")
    return engine


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    engine, _engine, _session_factory = _engine, None, None
    await engine.dispose()
    logger.info("Database engine disposed")


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Unit of work outside a request: commit on exit, roll back on error.

    Example:
        async with get_db_context() as db:
            await ReconciliationService(db, gateway, notifier).sweep_pending()
    """
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping :func:`get_db_context`."""
    async with get_db_context() as session:
        yield session
