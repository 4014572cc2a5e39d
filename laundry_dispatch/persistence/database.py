"""Process-wide async engine for the SQL stores.

The engine is created lazily from :class:`DatabaseSettings` the first time a
store needs it and torn down by :func:`dispose_engine` on shutdown.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (  # type: ignore[attr-defined]
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from laundry_dispatch.enterprise.config.settings import AppSettings, get_settings

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


metadata = Base.metadata

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


def init_engine(settings: Optional[AppSettings] = None) -> AsyncEngine:
    """Create the engine on first use; later calls return the same one."""

    global _engine, _sessionmaker
    if _engine is not None:
        return _engine

    db = (settings or get_settings()).database
    if not db.enabled:
        raise RuntimeError("Database usage is disabled by configuration.")
    url = str(db.url)
    options = {"echo": db.echo}
    if not url.startswith("sqlite"):
        options.update(pool_size=db.pool_size, max_overflow=db.max_overflow, pool_pre_ping=True)
    _engine = create_async_engine(url, **options)
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        init_engine()
    assert _sessionmaker is not None
    return _sessionmaker


async def create_schema() -> None:
    async with init_engine().begin() as conn:
        await conn.run_sync(metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None
