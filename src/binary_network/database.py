from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import NetworkSettings, get_settings

# SQLite has no row locks, so write transactions against the same database
# file are queued in-process, one writer at a time. Locks bind to the loop
# that first waits on them, so the registry is kept per event loop.
_SQLITE_WRITE_LOCKS: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
] = weakref.WeakKeyDictionary()


def create_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given database URL."""

    url_obj = make_url(url)
    is_sqlite = url_obj.get_backend_name().startswith("sqlite")

    connect_args: dict[str, Any] = {}
    if is_sqlite:
        connect_args["timeout"] = 30

    engine_kwargs: dict[str, Any] = {
        "echo": echo,
        "pool_pre_ping": True,
    }
    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    engine = create_async_engine(url, **engine_kwargs)

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA busy_timeout=30000")
                cursor.execute("PRAGMA foreign_keys=ON")
                if url_obj.database not in (None, "", ":memory:"):
                    cursor.execute("PRAGMA journal_mode=WAL")
            finally:
                cursor.close()

    return engine


def engine_from_settings(settings: NetworkSettings | None = None) -> AsyncEngine:
    """Create the engine described by ``database_url`` / ``database_echo``."""

    resolved = settings or get_settings()
    return create_engine(resolved.database_url, echo=resolved.database_echo)


def create_session_factory(
    engine: AsyncEngine, *, expire_on_commit: bool = False
) -> async_sessionmaker[AsyncSession]:
    """Return an async session factory bound to the provided engine."""

    return async_sessionmaker(engine, expire_on_commit=expire_on_commit)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Simple async context manager yielding a session and guaranteeing cleanup."""

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _sqlite_write_lock(
    session_factory: async_sessionmaker[AsyncSession],
) -> asyncio.Lock | None:
    bind = session_factory.kw.get("bind")
    if bind is None or bind.dialect.name != "sqlite":
        return None
    locks = _SQLITE_WRITE_LOCKS.setdefault(asyncio.get_running_loop(), {})
    return locks.setdefault(str(bind.url), asyncio.Lock())


@asynccontextmanager
async def write_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Transactional scope for tree mutations.

    Identical to :func:`session_scope` on PostgreSQL, where the conditional
    pointer updates are linearizable per row. On SQLite the whole transaction
    also holds the per-database writer lock.
    """

    async with AsyncExitStack() as stack:
        lock = _sqlite_write_lock(session_factory)
        if lock is not None:
            await stack.enter_async_context(lock)
        session = await stack.enter_async_context(session_scope(session_factory))
        yield session
