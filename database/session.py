"""
Async engine and session helpers for the message store.

Plain URLs are upgraded to their async driver:
  postgresql:// / postgres://   → postgresql+asyncpg://
  mysql:// / mysql+pymysql://   → mysql+aiomysql://
  sqlite://                     → sqlite+aiosqlite://

Two ways to use it:

    # explicit engine (Container, tests)
    engine = create_engine_for_url(url)
    await init_db(engine)
    store = SqlMessageStore(make_session_factory(engine))

    # process-wide engine from settings (scripts)
    await init_db()
    async with get_session() as db:
        ...
    await close_db()
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool

from database.models import Base

logger = structlog.get_logger()

ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
    "mysql+pymysql": "mysql+aiomysql",
    "sqlite": "sqlite+aiosqlite",
}

# Server databases only; SQLite gets a single shared connection or the default pool
POOL_SETTINGS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _to_async_url(db_url: str) -> str:
    scheme, sep, rest = db_url.partition("://")
    if not sep:
        return db_url
    return f"{ASYNC_DRIVERS.get(scheme, scheme)}://{rest}"


def _redacted(db_url: str) -> str:
    return db_url.rsplit("@", 1)[-1]


def _engine_kwargs(async_url: str, debug: bool) -> dict:
    if not async_url.startswith("sqlite"):
        return {"echo": debug, **POOL_SETTINGS}
    kwargs = {"echo": debug, "connect_args": {"check_same_thread": False}}
    path = async_url.partition("://")[2]
    if path in ("", "/", "/:memory:"):
        # Every connection to :memory: is a new empty database
        kwargs["poolclass"] = StaticPool
    return kwargs


def create_engine_for_url(db_url: str, debug: bool = False) -> AsyncEngine:
    async_url = _to_async_url(db_url)
    engine = create_async_engine(async_url, **_engine_kwargs(async_url, debug))
    logger.info("database_engine_created", dialect=engine.dialect.name, url=_redacted(async_url))
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Process-wide engine built from settings on first use."""
    global _engine
    if _engine is None:
        from config.settings import get_settings
        settings = get_settings()
        _engine = create_engine_for_url(settings.database.url, settings.debug)
    return _engine


@asynccontextmanager
async def get_session(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[AsyncSession]:
    """One transaction: committed when the block exits, rolled back if it raises."""
    global _session_factory
    if factory is None:
        if _session_factory is None:
            _session_factory = make_session_factory(get_engine())
        factory = _session_factory
    async with factory() as session, session.begin():
        yield session


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", dialect=engine.dialect.name,
                tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    """Dispose the process-wide engine, if one was created."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("database_closed")
