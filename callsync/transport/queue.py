"""
Outbound Delivery

Every frame the service sends to a participant goes through that
connection's outbound queue. One writer task per connection drains it in
FIFO order, so ticks, relayed signals and presence updates reach a client
in the order they were enqueued.

Enqueueing never waits on a socket:
- A full queue loses the frame for that connection only (QueueFullError)
- A connection whose socket failed is marked closed and refuses further
  frames (QueueClosedError) until the handler unregisters it
- broadcast() absorbs both errors per recipient, so one slow or dead
  participant never holds up a session transition
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]


class QueueFullError(Exception):
    """The connection is not draining fast enough; the frame was not queued."""
    def __init__(self, conn_id: str, queue_size: int):
        self.conn_id = conn_id
        self.queue_size = queue_size
        super().__init__(f"Outbound queue for {conn_id} is full ({queue_size} frames)")


class QueueClosedError(Exception):
    """The connection's writer has stopped."""
    def __init__(self, conn_id: str):
        self.conn_id = conn_id
        super().__init__(f"Outbound queue for {conn_id} is closed")


class ConnectionQueue:
    """
    Serialized frames waiting for one connection.

    Attributes:
        conn_id: Connection the frames are for
        sent: Frames handed to the socket so far
    """

    def __init__(self, conn_id: str, send_fn: SendFn, max_size: int = 200):
        """
        Args:
            conn_id: Connection identifier
            send_fn: Coroutine writing one text frame to the socket
            max_size: Frames allowed to wait before new ones are refused
        """
        self.conn_id = conn_id
        self.sent = 0
        self._send = send_fn
        self._max_size = max_size
        self._frames: asyncio.Queue[str] = asyncio.Queue(maxsize=max_size)
        self._writer: asyncio.Task | None = None
        self._closed = False

    def start(self) -> None:
        if self._writer is None and not self._closed:
            self._writer = asyncio.create_task(
                self._write_frames(),
                name=f"outbound_{self.conn_id}"
            )

    async def close(self) -> None:
        """Stop the writer. Frames still waiting are discarded."""
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        self._discard_pending()

    def enqueue(self, frame: str) -> None:
        """
        Queue a frame without waiting.

        Raises:
            QueueClosedError: The writer has stopped
            QueueFullError: max_size frames are already waiting
        """
        if self._closed:
            raise QueueClosedError(self.conn_id)
        try:
            self._frames.put_nowait(frame)
        except asyncio.QueueFull:
            raise QueueFullError(self.conn_id, self._max_size)

    async def drain(self) -> None:
        """Wait until every queued frame has been written (or discarded)."""
        if self._writer is not None and not self._writer.done():
            await self._frames.join()

    @property
    def qsize(self) -> int:
        return self._frames.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _write_frames(self) -> None:
        while True:
            frame = await self._frames.get()
            try:
                await self._send(frame)
                self.sent += 1
            except Exception as e:
                logger.warning(f"Send to {self.conn_id} failed, closing its queue: {e}")
                self._closed = True
                return
            finally:
                self._frames.task_done()
                if self._closed:
                    self._discard_pending()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._frames.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._frames.task_done()


class ConnectionQueueManager:
    """
    Outbound queues keyed by connection id.

    The handler registers a queue when a socket is accepted and
    unregisters it when the socket goes away; everything else only sends.
    """

    def __init__(self, max_queue_size: int = 200):
        """
        Args:
            max_queue_size: Queue depth for every connection
        """
        self._max_queue_size = max_queue_size
        self._queues: dict[str, ConnectionQueue] = {}
        self._lock = asyncio.Lock()

    async def register(self, conn_id: str, send_fn: SendFn) -> ConnectionQueue:
        """Create and start the queue for a connection (idempotent)."""
        async with self._lock:
            queue = self._queues.get(conn_id)
            if queue is None:
                queue = ConnectionQueue(conn_id, send_fn, self._max_queue_size)
                queue.start()
                self._queues[conn_id] = queue
        return queue

    async def unregister(self, conn_id: str) -> None:
        async with self._lock:
            queue = self._queues.pop(conn_id, None)
        if queue is not None:
            await queue.close()

    async def send(self, conn_id: str, message: str) -> bool:
        """
        Queue one frame for one connection.

        Returns:
            False if the connection is not registered

        Raises:
            QueueFullError, QueueClosedError: see ConnectionQueue.enqueue
        """
        queue = self._queues.get(conn_id)
        if queue is None:
            return False
        queue.enqueue(message)
        return True

    async def broadcast(self, conn_ids: Iterable[str], message: str) -> int:
        """
        Queue the same frame for several connections.

        Returns:
            Number of connections the frame was queued for
        """
        delivered = 0
        for conn_id in conn_ids:
            try:
                if await self.send(conn_id, message):
                    delivered += 1
                else:
                    logger.debug(f"Skipping unregistered connection {conn_id}")
            except (QueueFullError, QueueClosedError) as e:
                logger.warning(f"Frame dropped: {e}")
        return delivered

    async def shutdown(self) -> None:
        async with self._lock:
            queues = list(self._queues.values())
            self._queues.clear()
        await asyncio.gather(*(queue.close() for queue in queues))

    def connection_count(self) -> int:
        return len(self._queues)
