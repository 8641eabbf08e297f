# Transport Layer
# WebSocket connections, per-connection outbound queues and the HTTP surface
# The FastAPI app lives in callsync.transport.app and is imported explicitly

from callsync.transport.queue import (
    ConnectionQueue,
    ConnectionQueueManager,
    QueueFullError,
    QueueClosedError,
)

__all__ = [
    "ConnectionQueue",
    "ConnectionQueueManager",
    "QueueFullError",
    "QueueClosedError",
]
