"""Tests for snapshot sinks and the background writer."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from callsync.storage import (
    InMemorySnapshotSink,
    PersistenceError,
    SessionSnapshot,
    SnapshotSink,
    SnapshotWriter,
    StorageBackend,
    create_sink,
    create_sqlite_sink,
    settings_from_env,
    StorageSettings,
)
from callsync.storage.redis import RedisSnapshotSink

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _snapshot(status: str = "pending", session_id: str = "s-1", **overrides) -> SessionSnapshot:
    values = dict(
        id=session_id,
        caller_id="alice",
        callee_id="bob",
        channel_name="call_s1",
        duration_limit=30,
        start_time=None,
        status=status,
        warning_sent=False,
        end_reason=None,
        created_at=T0,
        ended_at=None,
    )
    values.update(overrides)
    return SessionSnapshot(**values)


class FailingSink(SnapshotSink):
    """Sink whose backend is always down."""

    def __init__(self):
        self.attempts = 0

    async def write(self, snapshot: SessionSnapshot) -> None:
        self.attempts += 1
        raise PersistenceError(f"backend unavailable for {snapshot.id}")

    async def get(self, session_id: str) -> SessionSnapshot | None:
        return None


class TestSessionSnapshot:
    """Dict conversion used by the Redis sink."""

    def test_dict_conversion(self) -> None:
        snapshot = _snapshot("active", start_time=T0)
        data = snapshot.to_dict()
        assert data["start_time"] == T0.isoformat()
        assert data["ended_at"] is None
        assert SessionSnapshot.from_dict(data) == snapshot


class TestInMemorySink:
    """Latest snapshot plus ordered history."""

    @pytest.mark.asyncio
    async def test_upsert_and_history(self) -> None:
        sink = InMemorySnapshotSink()
        await sink.write(_snapshot("pending"))
        await sink.write(_snapshot("active", start_time=T0))
        await sink.write(_snapshot("pending", session_id="s-2"))

        assert (await sink.get("s-1")).status == "active"
        assert await sink.get("missing") is None
        assert [s.status for s in await sink.history("s-1")] == ["pending", "active"]
        assert len(await sink.history()) == 3


class TestSqlAlchemySink:
    """SQLite file database through aiosqlite."""

    @pytest.mark.asyncio
    async def test_write_overwrites_row(self, tmp_path: Path) -> None:
        sink = await create_sqlite_sink(str(tmp_path / "callsync.db"))
        try:
            await sink.write(_snapshot("active", start_time=T0))
            await sink.write(_snapshot("expired", start_time=T0, end_reason="timeout", warning_sent=True))

            stored = await sink.get("s-1")
            assert stored.status == "expired"
            assert stored.end_reason == "timeout"
            assert stored.warning_sent is True
            assert stored.channel_name == "call_s1"
            assert await sink.get("missing") is None
        finally:
            await sink.close()


class TestRedisSink:
    """Key layout, TTL and error wrapping against a mocked client."""

    @pytest.mark.asyncio
    async def test_write_sets_key_with_ttl(self) -> None:
        redis = AsyncMock()
        sink = RedisSnapshotSink(redis, key_prefix="test", ttl_seconds=60)

        await sink.write(_snapshot("ended", end_reason="manual"))

        redis.set.assert_awaited_once()
        args, kwargs = redis.set.await_args
        assert args[0] == "test:call_session:s-1"
        assert json.loads(args[1])["status"] == "ended"
        assert kwargs == {"ex": 60}

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self) -> None:
        redis = AsyncMock()
        redis.get.return_value = json.dumps(_snapshot("active").to_dict()).encode()
        sink = RedisSnapshotSink(redis)

        stored = await sink.get("s-1")
        assert stored.status == "active"
        redis.get.assert_awaited_once_with("callsync:call_session:s-1")

    @pytest.mark.asyncio
    async def test_backend_error_wrapped(self) -> None:
        redis = AsyncMock()
        redis.set.side_effect = RedisConnectionError("down")
        sink = RedisSnapshotSink(redis)

        with pytest.raises(PersistenceError):
            await sink.write(_snapshot())


class TestSnapshotWriter:
    """Writes happen off the critical path and failures never surface."""

    @pytest.mark.asyncio
    async def test_writes_in_order(self) -> None:
        sink = InMemorySnapshotSink()
        writer = SnapshotWriter(sink)
        await writer.start()

        writer.submit(_snapshot("pending"))
        writer.submit(_snapshot("active"))
        writer.submit(_snapshot("ended"))
        await writer.flush()

        assert [s.status for s in await sink.history()] == ["pending", "active", "ended"]
        await writer.stop()

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog) -> None:
        sink = FailingSink()
        writer = SnapshotWriter(sink)
        await writer.start()

        with caplog.at_level(logging.WARNING, logger="callsync.storage.writer"):
            writer.submit(_snapshot("active"))
            writer.submit(_snapshot("ended"))
            await writer.flush()

        assert sink.attempts == 2
        assert "Persistence failure for session s-1" in caplog.text
        await writer.stop()

    @pytest.mark.asyncio
    async def test_disabled_writer_is_noop(self) -> None:
        writer = SnapshotWriter(None)
        await writer.start()
        assert writer.enabled is False
        writer.submit(_snapshot())
        await writer.flush()
        await writer.stop()

    @pytest.mark.asyncio
    async def test_full_queue_drops(self, caplog) -> None:
        sink = InMemorySnapshotSink()
        writer = SnapshotWriter(sink, max_size=1)
        await writer.start()

        with caplog.at_level(logging.WARNING, logger="callsync.storage.writer"):
            writer.submit(_snapshot("pending"))
            writer.submit(_snapshot("active"))

        assert "Snapshot queue full" in caplog.text
        await writer.flush()
        assert [s.status for s in await sink.history()] == ["pending"]
        await writer.stop()


class TestStorageFactory:
    """Backend selection from settings and environment."""

    @pytest.mark.asyncio
    async def test_none_backend_disables_persistence(self) -> None:
        assert await create_sink(StorageSettings()) is None

    @pytest.mark.asyncio
    async def test_memory_backend(self) -> None:
        sink = await create_sink(StorageSettings(backend=StorageBackend.MEMORY))
        assert isinstance(sink, InMemorySnapshotSink)

    @pytest.mark.asyncio
    async def test_sql_backend_requires_url(self) -> None:
        with pytest.raises(ValueError):
            await create_sink(StorageSettings(backend=StorageBackend.POSTGRESQL))

    def test_env_defaults(self, monkeypatch) -> None:
        for name in ("CALLSYNC_STORAGE_BACKEND", "CALLSYNC_DATABASE_URL", "CALLSYNC_REDIS_URL"):
            monkeypatch.delenv(name, raising=False)
        assert settings_from_env().backend == StorageBackend.NONE

    def test_env_detects_backend_from_url(self, monkeypatch) -> None:
        monkeypatch.delenv("CALLSYNC_STORAGE_BACKEND", raising=False)
        monkeypatch.delenv("CALLSYNC_REDIS_URL", raising=False)
        monkeypatch.setenv("CALLSYNC_DATABASE_URL", "postgresql://u:p@db/callsync")
        assert settings_from_env().backend == StorageBackend.POSTGRESQL

        monkeypatch.delenv("CALLSYNC_DATABASE_URL")
        monkeypatch.setenv("CALLSYNC_REDIS_URL", "redis://localhost:6379/0")
        assert settings_from_env().backend == StorageBackend.REDIS
