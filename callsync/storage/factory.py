"""
Snapshot Sink Factory

Chooses where session snapshots go, from settings or the environment.

Backends:
- none: persistence disabled (default)
- memory: kept in process, for development and tests
- sqlite / postgresql / mysql: one row per session via async SQLAlchemy
- redis: one JSON key per session, expiring after a TTL

Examples:
    sink = await create_sink_from_env()
    sink = await create_sink(StorageSettings(database_url="postgresql://db/callsync"))
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .memory import InMemorySnapshotSink
from .models import Base
from .ports import SnapshotSink
from .sqlalchemy import SqlAlchemySnapshotSink


class StorageBackend(str, Enum):
    NONE = "none"
    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    REDIS = "redis"


# SQLAlchemy dialect name -> (backend, async driver)
_SQL_DIALECTS: dict[str, tuple[StorageBackend, str]] = {
    "sqlite": (StorageBackend.SQLITE, "aiosqlite"),
    "postgresql": (StorageBackend.POSTGRESQL, "asyncpg"),
    "mysql": (StorageBackend.MYSQL, "aiomysql"),
}

WEEK_SECONDS = 7 * 24 * 3600


@dataclass
class StorageSettings:
    """
    Where and how snapshots are persisted.

    Attributes:
        backend: Which sink to build
        database_url: SQLAlchemy URL for the SQL backends (driver optional)
        redis_url: Connection URL for the redis backend
        pool_size: SQL connection pool size (ignored for SQLite)
        pool_max_overflow: Extra SQL connections allowed above pool_size
        echo_sql: Log every SQL statement
        create_tables: Create the call_sessions table at startup
        key_prefix: Namespace for Redis keys
        snapshot_ttl_seconds: Expiry of Redis snapshots
    """
    backend: StorageBackend = StorageBackend.NONE
    database_url: str | None = None
    redis_url: str | None = None
    pool_size: int = 5
    pool_max_overflow: int = 10
    echo_sql: bool = False
    create_tables: bool = True
    key_prefix: str = "callsync"
    snapshot_ttl_seconds: int = WEEK_SECONDS


def _parse_sql_url(raw: str) -> tuple[StorageBackend, URL]:
    """
    Resolve a database URL to its backend and async-driver URL.

    Raises:
        ValueError: The dialect is not one of sqlite, postgresql, mysql
    """
    url = make_url(raw)
    dialect = url.get_backend_name()
    if dialect == "postgres":
        dialect = "postgresql"
    if dialect not in _SQL_DIALECTS:
        raise ValueError(f"Unsupported database URL scheme: {url.drivername}")
    backend, driver = _SQL_DIALECTS[dialect]
    return backend, url.set(drivername=f"{dialect}+{driver}")


def settings_from_env() -> StorageSettings:
    """
    Read StorageSettings from the environment.

    Environment variables:
        CALLSYNC_STORAGE_BACKEND: none | memory | sqlite | postgresql | mysql | redis
        CALLSYNC_DATABASE_URL: SQL database URL
        CALLSYNC_REDIS_URL: Redis URL
        CALLSYNC_POOL_SIZE, CALLSYNC_POOL_MAX_OVERFLOW: SQL pool sizing
        CALLSYNC_ECHO_SQL: "true" to log SQL
        CALLSYNC_CREATE_TABLES: "false" to skip table creation
        CALLSYNC_KEY_PREFIX: Redis key namespace
        CALLSYNC_SNAPSHOT_TTL: Redis expiry in seconds

    With no explicit backend, a database URL selects its SQL backend and
    otherwise a Redis URL selects redis.
    """
    database_url = os.getenv("CALLSYNC_DATABASE_URL") or None
    redis_url = os.getenv("CALLSYNC_REDIS_URL") or None
    requested = os.getenv("CALLSYNC_STORAGE_BACKEND", StorageBackend.NONE.value).lower()

    backend = StorageBackend(requested)
    if backend == StorageBackend.NONE:
        if database_url:
            backend, _ = _parse_sql_url(database_url)
        elif redis_url:
            backend = StorageBackend.REDIS

    return StorageSettings(
        backend=backend,
        database_url=database_url,
        redis_url=redis_url,
        pool_size=int(os.getenv("CALLSYNC_POOL_SIZE", "5")),
        pool_max_overflow=int(os.getenv("CALLSYNC_POOL_MAX_OVERFLOW", "10")),
        echo_sql=os.getenv("CALLSYNC_ECHO_SQL", "").lower() == "true",
        create_tables=os.getenv("CALLSYNC_CREATE_TABLES", "true").lower() != "false",
        key_prefix=os.getenv("CALLSYNC_KEY_PREFIX", "callsync"),
        snapshot_ttl_seconds=int(os.getenv("CALLSYNC_SNAPSHOT_TTL", str(WEEK_SECONDS))),
    )


async def _create_sql_sink(settings: StorageSettings) -> SqlAlchemySnapshotSink:
    if not settings.database_url:
        raise ValueError(f"database_url required for backend {settings.backend.value}")

    backend, url = _parse_sql_url(settings.database_url)
    options: dict = {"echo": settings.echo_sql}
    if backend != StorageBackend.SQLITE:
        options.update(pool_size=settings.pool_size, max_overflow=settings.pool_max_overflow)
    engine = create_async_engine(url, **options)

    if settings.create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    return SqlAlchemySnapshotSink(
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        engine=engine,
    )


def _create_redis_sink(settings: StorageSettings) -> SnapshotSink:
    if not settings.redis_url:
        raise ValueError("redis_url required for backend redis")

    from redis.asyncio import Redis
    from .redis import RedisSnapshotSink

    return RedisSnapshotSink(
        redis=Redis.from_url(settings.redis_url),
        key_prefix=settings.key_prefix,
        ttl_seconds=settings.snapshot_ttl_seconds,
    )


async def create_sink(settings: StorageSettings) -> SnapshotSink | None:
    """
    Build the sink described by settings.

    Returns:
        The sink, or None when persistence is disabled

    Raises:
        ValueError: A SQL or redis backend without its URL
    """
    if settings.backend == StorageBackend.NONE:
        return None
    if settings.backend == StorageBackend.MEMORY:
        return InMemorySnapshotSink()
    if settings.backend == StorageBackend.REDIS:
        return _create_redis_sink(settings)
    return await _create_sql_sink(settings)


async def create_sink_from_env() -> SnapshotSink | None:
    return await create_sink(settings_from_env())


async def create_sqlite_sink(path: str = ":memory:", create_tables: bool = True) -> SnapshotSink:
    """SQLite sink at a file path (in memory by default)."""
    return await create_sink(StorageSettings(
        backend=StorageBackend.SQLITE,
        database_url=f"sqlite:///{path}",
        create_tables=create_tables,
    ))
