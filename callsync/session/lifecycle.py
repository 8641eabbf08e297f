"""
Session Lifecycle Controller

The state machine tying store, presence and timer together:

    pending -> active -> warning -> {ended | expired}

Every transition applies the state change and enqueues its broadcast in
the same critical section (the session's lock), so a transition is never
observed half-applied. Broadcasts only enqueue onto per-connection queues
and never wait on a socket.

Terminal transitions are idempotent: a second end request, a late timer
check or a leave racing an expiry finds the session terminal and does
nothing. After termination the record is kept for a short grace period
so the termination notice can be delivered, then purged.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from callsync.protocol.messages import (
    ServerMessage,
    create_call_started,
    create_timer_tick,
    create_time_warning,
    create_force_end_call,
)
from callsync.session.errors import SessionNotFound
from callsync.session.session import CallSession, CallStatus, EndReason, utcnow
from callsync.session.store import SessionStore
from callsync.storage.writer import SnapshotWriter
from callsync.transport.queue import ConnectionQueueManager

logger = logging.getLogger(__name__)


class LifecycleController:
    """
    Applies lifecycle transitions to sessions held in a SessionStore.

    Methods taking a CallSession expect the caller to be inside
    store.acquire() for that session. Methods taking a session id
    acquire the lock themselves.
    """

    def __init__(
        self,
        store: SessionStore,
        outbox: ConnectionQueueManager,
        writer: SnapshotWriter | None = None,
        grace_period_seconds: float = 5.0,
        warning_threshold_seconds: int = 120,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the controller.

        Args:
            store: Session store owning the records
            outbox: Outbound queues for every connection
            writer: Optional background persistence writer
            grace_period_seconds: Delay between termination and purge
            warning_threshold_seconds: Remaining time that triggers the warning
            clock: Source of the current UTC time
        """
        self._store = store
        self._outbox = outbox
        self._writer = writer or SnapshotWriter(None)
        self._grace_period = grace_period_seconds
        self._warning_threshold = warning_threshold_seconds
        self._clock = clock

        # Outstanding purge tasks, kept so they are not garbage collected
        self._purge_tasks: set[asyncio.Task] = set()

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def outbox(self) -> ConnectionQueueManager:
        return self._outbox

    def now(self) -> datetime:
        return self._clock()

    async def stop(self) -> None:
        """Cancel pending purges (service shutdown)."""
        tasks = list(self._purge_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._purge_tasks.clear()

    # =========================================================================
    # Transitions (caller holds the session lock)
    # =========================================================================

    async def broadcast(
        self,
        session: CallSession,
        message: ServerMessage,
        exclude: str | None = None
    ) -> int:
        """Best-effort send to every connection registered in the session."""
        return await self._outbox.broadcast(
            session.connection_ids(exclude=exclude),
            message.to_json()
        )

    def persist(self, session: CallSession) -> None:
        """Fire-and-forget snapshot write."""
        self._writer.submit(session.to_snapshot())

    async def start_call(self, session: CallSession) -> bool:
        """
        pending -> active.

        Fires once: returns False if the session already has a start time
        or is not pending.
        """
        if session.start_time is not None or session.status != CallStatus.PENDING:
            return False

        session.start_time = self.now()
        session.status = CallStatus.ACTIVE

        await self.broadcast(session, create_call_started(
            start_time=session.start_time,
            duration_limit=session.duration_limit,
            time_remaining=session.duration_seconds,
        ))
        self.persist(session)

        logger.info(
            f"Call started: session {session.id} "
            f"({session.duration_limit} min, participants: {list(session.participants)})"
        )
        return True

    async def terminate(self, session: CallSession, reason: EndReason) -> bool:
        """
        active|warning -> ended|expired.

        Broadcasts force_end_call once and schedules the purge.
        Returns False (no-op) unless the countdown is running: a pending
        session never started, and a terminal one already ended.
        """
        if not session.status.is_running:
            return False

        session.status = reason.final_status
        session.end_reason = reason
        session.ended_at = self.now()

        await self.broadcast(session, create_force_end_call(
            reason=reason.value,
            message=reason.message,
        ))
        self.persist(session)
        self._schedule_purge(session.id)

        logger.info(f"Session ended - reason: {reason.value} {session.to_summary_dict()}")
        return True

    async def _warn(self, session: CallSession, remaining: int) -> None:
        session.warning_sent = True
        session.status = CallStatus.WARNING

        await self.broadcast(session, create_time_warning(remaining))
        self.persist(session)

        logger.info(f"Warning: session {session.id} ({remaining}s remaining)")

    # =========================================================================
    # Entry points (acquire the lock)
    # =========================================================================

    async def end_session(self, session_id: str, reason: EndReason) -> bool:
        """
        Explicit end request or abandonment.

        Unknown, purged, pending or already-terminal sessions are a no-op.
        """
        try:
            async with self._store.acquire(session_id) as session:
                return await self.terminate(session, reason)
        except SessionNotFound:
            logger.debug(f"End request for unknown session {session_id} ignored")
            return False

    async def check_timer(self, session_id: str) -> int | None:
        """
        One countdown step for a session.

        Recomputes remaining time from start_time, broadcasts timer_tick,
        then applies the warning and expiry transitions.

        Returns:
            Remaining seconds, or None if the session is gone or not running
        """
        try:
            async with self._store.acquire(session_id) as session:
                if not session.status.is_running or session.start_time is None:
                    return None

                remaining = session.time_remaining(self.now())

                await self.broadcast(
                    session,
                    create_timer_tick(remaining, session.status.value)
                )

                if remaining <= self._warning_threshold and not session.warning_sent:
                    await self._warn(session, remaining)

                if remaining <= 0:
                    await self.terminate(session, EndReason.TIMEOUT)

                return remaining
        except SessionNotFound:
            return None

    # =========================================================================
    # Purge
    # =========================================================================

    def _schedule_purge(self, session_id: str) -> None:
        task = asyncio.create_task(
            self._purge_later(session_id),
            name=f"purge_{session_id}"
        )
        self._purge_tasks.add(task)
        task.add_done_callback(self._purge_tasks.discard)

    async def _purge_later(self, session_id: str) -> None:
        await asyncio.sleep(self._grace_period)
        await self._store.remove(session_id)

    @property
    def pending_purges(self) -> int:
        return len(self._purge_tasks)
