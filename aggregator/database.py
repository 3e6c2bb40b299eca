"""
Pageview Aggregator — async engine and session wiring.

SQLite (aiosqlite) is the default and what the test suite runs on.
PostgreSQL (asyncpg) and MySQL/MariaDB (aiomysql) get a pooled engine.
"""

from typing import AsyncIterator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from aggregator.config import settings


def engine_options(url: str) -> dict:
    """``create_async_engine`` keyword arguments for the URL's backend."""
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return {}

    options = {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": settings.db_pool_recycle,
    }
    if backend in ("mysql", "mariadb"):
        # url columns are utf8mb4_bin
        options["connect_args"] = {"charset": "utf8mb4"}
    return options


def make_engine(url: str, **overrides) -> AsyncEngine:
    options = {"echo": settings.db_echo, **engine_options(url), **overrides}
    return create_async_engine(url, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url)
async_session = make_session_factory(engine)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields an async session."""
    async with async_session() as session:
        yield session


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create the shared ``domains`` table; per-domain tables come from migrations."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
