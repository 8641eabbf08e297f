"""Pytest fixtures for session authority tests."""
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from callsync.presence import PresenceTracker
from callsync.session import LifecycleController, SessionStore
from callsync.signaling import SignalingRelay
from callsync.storage import InMemorySnapshotSink, SnapshotWriter
from callsync.timer import TimerAuthority
from callsync.transport.queue import ConnectionQueueManager


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingOutbox(ConnectionQueueManager):
    """Queue manager that records frames per connection instead of writing to sockets."""

    def __init__(self):
        super().__init__()
        self.frames: dict[str, list[dict]] = {}

    def connect(self, *conn_ids: str) -> None:
        for conn_id in conn_ids:
            self.frames.setdefault(conn_id, [])

    async def send(self, conn_id: str, message: str) -> bool:
        if conn_id not in self.frames:
            return False
        self.frames[conn_id].append(json.loads(message))
        return True

    def events(self, conn_id: str) -> list[str]:
        return [frame["event"] for frame in self.frames.get(conn_id, [])]

    def of(self, conn_id: str, event: str) -> list[dict]:
        """Payloads of every frame with the given event name."""
        return [f["data"] for f in self.frames.get(conn_id, []) if f["event"] == event]

    def clear(self) -> None:
        for frames in self.frames.values():
            frames.clear()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def outbox() -> RecordingOutbox:
    box = RecordingOutbox()
    box.connect("c-alice", "c-bob", "c-carol")
    return box


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def sink() -> InMemorySnapshotSink:
    return InMemorySnapshotSink()


@pytest_asyncio.fixture
async def writer(sink: InMemorySnapshotSink):
    snapshot_writer = SnapshotWriter(sink)
    await snapshot_writer.start()
    yield snapshot_writer
    await snapshot_writer.stop()


@pytest_asyncio.fixture
async def lifecycle(store, outbox, writer, clock):
    controller = LifecycleController(
        store=store,
        outbox=outbox,
        writer=writer,
        grace_period_seconds=0.05,
        warning_threshold_seconds=120,
        clock=clock,
    )
    yield controller
    await controller.stop()


@pytest.fixture
def presence(lifecycle) -> PresenceTracker:
    return PresenceTracker(lifecycle)


@pytest.fixture
def relay(lifecycle) -> SignalingRelay:
    return SignalingRelay(lifecycle)


@pytest.fixture
def timer(lifecycle) -> TimerAuthority:
    return TimerAuthority(lifecycle, tick_interval_seconds=0.01)


@pytest_asyncio.fixture
async def active_call(store, presence):
    """A five-minute session with alice and bob connected."""
    session = await store.create(duration_limit=5, caller_id="alice", callee_id="bob")
    await presence.join(session.id, "alice", "c-alice")
    await presence.join(session.id, "bob", "c-bob")
    return session.id
