"""
Redis Storage Adapter

Redis-based snapshot sink. Snapshots are short-lived audit records,
so every key carries a TTL for automatic cleanup.

Uses redis.asyncio for async operations.

Key pattern:
- {prefix}:call_session:{session_id} -> JSON-encoded SessionSnapshot
"""

from __future__ import annotations

import json

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .ports import (
    SnapshotSink,
    SessionSnapshot,
    PersistenceError,
)


class RedisSnapshotSink(SnapshotSink):
    """
    Redis-based snapshot sink with TTL support.
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "callsync",
        ttl_seconds: int = 86400 * 7,  # 7 days default
    ) -> None:
        """
        Initialize Redis snapshot sink.

        Args:
            redis: Redis async client
            key_prefix: Prefix for all keys
            ttl_seconds: Expiry applied on every write
        """
        self._redis = redis
        self._prefix = key_prefix
        self._ttl = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}:call_session:{session_id}"

    async def write(self, snapshot: SessionSnapshot) -> None:
        try:
            await self._redis.set(
                self._key(snapshot.id),
                json.dumps(snapshot.to_dict()),
                ex=self._ttl,
            )
        except RedisError as e:
            raise PersistenceError(
                f"Failed to write snapshot {snapshot.id}: {e}"
            ) from e

    async def get(self, session_id: str) -> SessionSnapshot | None:
        data = await self._redis.get(self._key(session_id))
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        return SessionSnapshot.from_dict(json.loads(data))

    async def close(self) -> None:
        await self._redis.aclose()
