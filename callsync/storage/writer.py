"""
Background Snapshot Writer

Fire-and-forget persistence for lifecycle transitions.

Design:
- Callers enqueue snapshots without awaiting the backend
- A single writer coroutine drains the queue, preserving write order
- Sink failures are logged and dropped, never surfaced to participants
- If the queue is full the snapshot is dropped with a warning
"""

import asyncio
import logging

from callsync.storage.ports import SnapshotSink, SessionSnapshot

logger = logging.getLogger(__name__)


class SnapshotWriter:
    """
    Serializes writes to a SnapshotSink on a background task.

    With no sink configured every submit is a no-op.
    """

    def __init__(self, sink: SnapshotSink | None, max_size: int = 1000):
        """
        Initialize the writer.

        Args:
            sink: Destination sink, or None to disable persistence
            max_size: Max pending snapshots before new ones are dropped
        """
        self._sink = sink
        self._queue: asyncio.Queue[SessionSnapshot | None] = asyncio.Queue(maxsize=max_size)
        self._writer_task: asyncio.Task | None = None
        self._closed = False

    @property
    def enabled(self) -> bool:
        return self._sink is not None

    async def start(self) -> None:
        """Start the writer task."""
        if self._sink is not None and self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._writer_loop(),
                name="snapshot_writer"
            )

    async def stop(self, timeout: float = 5.0) -> None:
        """Flush pending snapshots (bounded by timeout) and close the sink."""
        self._closed = True
        if self._writer_task:
            try:
                self._queue.put_nowait(None)
                await asyncio.wait_for(self._writer_task, timeout=timeout)
            except (asyncio.QueueFull, asyncio.TimeoutError):
                logger.warning("Snapshot writer did not drain before shutdown")
                self._writer_task.cancel()
                try:
                    await self._writer_task
                except asyncio.CancelledError:
                    pass
            self._writer_task = None
        if self._sink is not None:
            await self._sink.close()

    def submit(self, snapshot: SessionSnapshot) -> None:
        """Queue a snapshot for writing. Never blocks, never raises."""
        if self._sink is None or self._closed:
            return
        try:
            self._queue.put_nowait(snapshot)
        except asyncio.QueueFull:
            logger.warning(
                f"Snapshot queue full, dropping write for session {snapshot.id} "
                f"(status: {snapshot.status})"
            )

    async def flush(self) -> None:
        """Wait until every queued snapshot has been handled."""
        if self._writer_task is not None:
            await self._queue.join()

    async def _writer_loop(self) -> None:
        while True:
            try:
                snapshot = await self._queue.get()
            except asyncio.CancelledError:
                break

            try:
                # None is the shutdown signal
                if snapshot is None:
                    break
                await self._sink.write(snapshot)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(
                    f"Persistence failure for session {snapshot.id}: {e}"
                )
            finally:
                self._queue.task_done()
