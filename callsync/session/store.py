"""
Session Store

Authoritative in-memory mapping from session id to CallSession.

Concurrency model:
- Every session has its own asyncio.Lock; all mutation of a session
  happens inside acquire(session_id), so joins, leaves, timer checks and
  explicit ends on the same session are serialized
- The registry lock only guards insertion and removal in the map and is
  never held while a session is being mutated, so unrelated sessions
  proceed independently
- A purged id is gone for good: lookups report SessionNotFound and
  nothing recreates it
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from callsync.session.errors import SessionNotFound
from callsync.session.session import CallSession

logger = logging.getLogger(__name__)


@dataclass
class _SessionSlot:
    session: CallSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionStore:
    """
    Owns all CallSession records.

    get() hands out detached copies; the live record is only reachable
    through acquire(), under that session's lock.
    """

    def __init__(self):
        self._slots: dict[str, _SessionSlot] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        duration_limit: int,
        caller_id: str | None = None,
        callee_id: str | None = None,
    ) -> CallSession:
        """
        Create a pending session with no participants.

        Returns:
            A copy of the created session
        """
        session = CallSession(
            duration_limit=duration_limit,
            caller_id=caller_id,
            callee_id=callee_id,
        )
        async with self._lock:
            self._slots[session.id] = _SessionSlot(session=session)

        logger.info(
            f"Session created: {session.id} "
            f"(duration: {duration_limit} min, caller: {caller_id}, callee: {callee_id})"
        )
        return session.model_copy(deep=True)

    async def get(self, session_id: str) -> CallSession:
        """
        Get a detached copy of a session.

        Raises:
            SessionNotFound: Unknown or purged id
        """
        async with self.acquire(session_id) as session:
            return session.model_copy(deep=True)

    async def remove(self, session_id: str) -> bool:
        """Drop a session from the store. Returns False if it was already gone."""
        async with self._lock:
            slot = self._slots.pop(session_id, None)
        if slot is None:
            return False
        logger.info(f"Session purged: {session_id}")
        return True

    @asynccontextmanager
    async def acquire(self, session_id: str) -> AsyncIterator[CallSession]:
        """
        Serialized access to the live session record.

        Raises:
            SessionNotFound: Unknown id, or purged while waiting for the lock
        """
        slot = self._slots.get(session_id)
        if slot is None:
            raise SessionNotFound(session_id)

        async with slot.lock:
            if self._slots.get(session_id) is not slot:
                raise SessionNotFound(session_id)
            yield slot.session

    def running_ids(self) -> list[str]:
        """Ids of sessions whose countdown is running."""
        return [
            session_id for session_id, slot in self._slots.items()
            if slot.session.status.is_running
        ]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._slots

    @property
    def session_count(self) -> int:
        """Total number of sessions in memory."""
        return len(self._slots)

    @property
    def running_count(self) -> int:
        """Number of sessions with a running countdown."""
        return sum(
            1 for slot in self._slots.values()
            if slot.session.status.is_running
        )
