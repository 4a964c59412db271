from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy import MetaData, event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

# Pool options SQLite's single-connection pools reject
_POOL_OPTIONS = ("pool_size", "max_overflow", "pool_pre_ping")

_NOT_INITIALIZED = "Database not initialized. Call init_db() first."


def normalize_url(database_url: str) -> URL:
    """
    Parse ``database_url``, switching plain PostgreSQL URLs to asyncpg.

    Example:
        >>> normalize_url("postgresql://shop@localhost/shop").drivername
        'postgresql+asyncpg'
    """
    url = make_url(database_url)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+asyncpg")
    return url


def _engine_options(url: URL, echo: bool, engine_kwargs: dict[str, Any]) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": echo, **engine_kwargs}
    if url.get_backend_name() == "sqlite":
        for name in _POOL_OPTIONS:
            options.pop(name, None)
        options.setdefault("connect_args", {"check_same_thread": False})
    else:
        options.setdefault("pool_pre_ping", True)
    return options


def _enforce_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """
    Turn on ``PRAGMA foreign_keys`` for every new SQLite connection.

    ON DELETE rules compiled from association flags depend on it.
    """

    @event.listens_for(engine.sync_engine.pool, "connect")
    def _on_connect(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_db(
    database_url: str,
    *,
    echo: bool = False,
    **engine_kwargs: Any,
) -> None:
    """
    Create the engine and session factory used by :func:`get_db`.

    Args:
        database_url: The connection URL (e.g., 'sqlite+aiosqlite:///shop.db').
        echo: If True, SQLAlchemy will log all emitted SQL.
        **engine_kwargs: Passed to `create_async_engine`; pool options are
            dropped for SQLite.
    """
    global _engine, _session_factory

    url = normalize_url(database_url)
    engine = create_async_engine(url, **_engine_options(url, echo, engine_kwargs))
    if url.get_backend_name() == "sqlite":
        _enforce_sqlite_foreign_keys(engine)

    _engine = engine
    _session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def close_db() -> None:
    """Dispose of the engine; :func:`init_db` must be called again afterwards."""
    global _engine, _session_factory

    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()


def is_initialized() -> bool:
    return _engine is not None


def _require_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


async def create_tables(metadata: MetaData) -> None:
    """
    Create every table of ``metadata`` that does not exist yet.

    Example:
        >>> await create_tables(registry.metadata)
    """
    async with _require_engine().begin() as conn:
        await conn.run_sync(metadata.create_all)


async def drop_tables(metadata: MetaData) -> None:
    async with _require_engine().begin() as conn:
        await conn.run_sync(metadata.drop_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session; it is rolled back if the consumer raises.

    Example:
        >>> async for db in get_db():
        ...     await writer.upsert(db, "blog_tag", [{"name": "python"}], context)
    """
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)

    async with _session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
