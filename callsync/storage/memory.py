"""
In-Memory Storage Adapter

Thread-safe snapshot sink for development and testing.
Uses an asyncio lock for concurrent async safety.

Everything is lost on restart.
"""

import asyncio
from dataclasses import replace

from callsync.storage.ports import SnapshotSink, SessionSnapshot


class InMemorySnapshotSink(SnapshotSink):
    """
    In-memory snapshot storage.

    Keeps the latest snapshot per session plus the write history,
    which is handy for asserting what was persisted and in which order.
    """

    def __init__(self):
        self._snapshots: dict[str, SessionSnapshot] = {}
        self._history: list[SessionSnapshot] = []
        self._lock = asyncio.Lock()

    async def write(self, snapshot: SessionSnapshot) -> None:
        async with self._lock:
            stored = replace(snapshot)
            self._snapshots[snapshot.id] = stored
            self._history.append(stored)

    async def get(self, session_id: str) -> SessionSnapshot | None:
        async with self._lock:
            return self._snapshots.get(session_id)

    async def history(self, session_id: str | None = None) -> list[SessionSnapshot]:
        """All writes in order, optionally for a single session."""
        async with self._lock:
            if session_id is None:
                return list(self._history)
            return [s for s in self._history if s.id == session_id]
