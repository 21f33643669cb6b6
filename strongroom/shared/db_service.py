"""
Centralized database service for Strongroom.

One explicit initialization point shared by every gate that persists
records (currently RecycleGate and the project lookup). Nothing is created at
import time; call init_db(...) from startup or from tests.
"""

from __future__ import annotations

from contextlib import contextmanager, asynccontextmanager
from typing import Optional, Tuple

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

_engine: Optional[Engine] = None
_async_engine: Optional[AsyncEngine] = None
_SessionLocal: Optional[sessionmaker] = None
_AsyncSessionLocal: Optional[async_sessionmaker] = None
_initialized = False
_database_url: Optional[str] = None

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_urls(database_url: str) -> Tuple[str, str]:
    """Derive the (sync, async) URL pair from whichever form was configured."""
    url = make_url(database_url)
    backend = url.get_backend_name()
    async_driver = _ASYNC_DRIVERS.get(backend)

    if async_driver is None:
        return database_url, database_url

    sync_url = url.set(drivername=backend).render_as_string(hide_password=False)
    async_url = url.set(drivername=async_driver).render_as_string(hide_password=False)
    return sync_url, async_url


def _sqlite_engine_kwargs(sync_url: str) -> dict:
    url = make_url(sync_url)
    if url.get_backend_name() != "sqlite":
        return {}

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    else:
        # Connections are not reused across event loops
        kwargs["poolclass"] = NullPool
    return kwargs


def init_db(database_url: str, *, echo: bool = False) -> None:
    """
    Initialize shared engines and sessionmakers.

    Calling it again after a successful init is a no-op.
    """
    global _engine, _async_engine, _SessionLocal, _AsyncSessionLocal
    global _initialized, _database_url

    if _initialized:
        return

    if not database_url:
        raise RuntimeError("database_url is required to initialize the DB service")

    sync_url, async_url = _build_urls(database_url)
    engine_kwargs = {"echo": echo, "pool_pre_ping": True}
    engine_kwargs.update(_sqlite_engine_kwargs(sync_url))

    _engine = create_engine(sync_url, **engine_kwargs)
    _async_engine = create_async_engine(async_url, **engine_kwargs)

    _SessionLocal = sessionmaker(bind=_engine)
    _AsyncSessionLocal = async_sessionmaker(
        bind=_async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    _database_url = database_url
    _initialized = True


def is_initialized() -> bool:
    """Return True if the DB service has been initialized."""
    return _initialized


def _require_initialized() -> None:
    if not _initialized:
        raise RuntimeError("Database not initialized. Call init_db(...) before using the DB service.")


def get_engine() -> Engine:
    _require_initialized()
    return _engine


def create_tables(metadata: MetaData) -> None:
    """Create any missing tables declared on a model metadata object."""
    _require_initialized()
    metadata.create_all(bind=_engine)


@contextmanager
def get_session():
    """Get a sync session as a context manager."""
    _require_initialized()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@asynccontextmanager
async def get_async_session():
    """Get an async session that commits on success and rolls back on error."""
    _require_initialized()
    session = _AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def dispose() -> None:
    """Dispose engines and forget the configuration (shutdown and tests)."""
    global _engine, _async_engine, _SessionLocal, _AsyncSessionLocal
    global _initialized, _database_url

    if _async_engine is not None:
        await _async_engine.dispose()
    if _engine is not None:
        _engine.dispose()

    _engine = None
    _async_engine = None
    _SessionLocal = None
    _AsyncSessionLocal = None
    _database_url = None
    _initialized = False
