"""
Presence Tracker

Tracks which participants are connected to each session and detects
join/leave transitions.

Reconnect semantics: a user id maps to exactly one connection, and a
second join with the same user id replaces the first (last connection
wins). The replaced connection is not closed; it simply stops receiving
session traffic.

Two-party assumption: only the start condition looks at the participant
count. A third joiner is registered and notified like anyone else but
never restarts the clock or replays call_started.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from callsync.protocol.messages import (
    create_session_state,
    create_user_joined,
    create_user_left,
)
from callsync.session.errors import SessionNotFound, SessionExpired
from callsync.session.lifecycle import LifecycleController
from callsync.session.session import EndReason

logger = logging.getLogger(__name__)

PARTICIPANTS_TO_START = 2


@dataclass
class JoinResult:
    """Outcome of a successful join."""
    session_id: str
    user_id: str
    started: bool = False
    waiting: bool = False
    replaced_conn_id: str | None = None
    state: dict[str, Any] = field(default_factory=dict)


class PresenceTracker:
    """
    Join/leave handling on top of the lifecycle controller.

    All participant mutation happens under the session's lock.
    """

    def __init__(self, lifecycle: LifecycleController):
        self._lifecycle = lifecycle
        self._store = lifecycle.store

    async def join(self, session_id: str, user_id: str, conn_id: str) -> JoinResult:
        """
        Register a connection for a user in a session.

        Raises:
            SessionNotFound: Unknown or purged session
            SessionExpired: Session already ended or expired
        """
        async with self._store.acquire(session_id) as session:
            if session.status.is_terminal:
                logger.warning(
                    f"Join rejected: session {session_id} is {session.status.value} "
                    f"(user: {user_id})"
                )
                raise SessionExpired(session_id)

            previous = session.participants.get(user_id)
            session.participants[user_id] = conn_id
            replaced = previous if previous not in (None, conn_id) else None
            if replaced:
                logger.info(
                    f"User {user_id} reconnected to session {session_id} "
                    f"({replaced} -> {conn_id})"
                )

            logger.info(
                f"{user_id} joined session {session_id} "
                f"({len(session.participants)} users)"
            )

            # Notify the others
            await self._lifecycle.broadcast(
                session, create_user_joined(user_id), exclude=conn_id
            )

            started = False
            if len(session.participants) >= PARTICIPANTS_TO_START:
                started = await self._lifecycle.start_call(session)

            # Authoritative state for the joiner, in every case
            state = session.to_state_dict(self._lifecycle.now())
            await self._lifecycle.outbox.broadcast(
                [conn_id], create_session_state(state).to_json()
            )

            return JoinResult(
                session_id=session_id,
                user_id=user_id,
                started=started,
                waiting=len(session.participants) < PARTICIPANTS_TO_START,
                replaced_conn_id=replaced,
                state=state,
            )

    async def leave(
        self,
        session_id: str,
        user_id: str,
        conn_id: str | None = None
    ) -> bool:
        """
        Remove a user from a session.

        If conn_id is given and the user has since reconnected on another
        connection, the leave is ignored. Emptying a running session ends
        it with reason all_left.

        Returns:
            True if the user was removed
        """
        try:
            async with self._store.acquire(session_id) as session:
                current = session.participants.get(user_id)
                if current is None:
                    return False
                if conn_id is not None and current != conn_id:
                    logger.info(
                        f"Stale leave for {user_id} in session {session_id} ignored "
                        f"({conn_id} was replaced by {current})"
                    )
                    return False

                del session.participants[user_id]
                logger.info(
                    f"{user_id} left session {session_id} "
                    f"({len(session.participants)} users)"
                )

                await self._lifecycle.broadcast(session, create_user_left(user_id))

                if not session.participants and session.status.is_running:
                    await self._lifecycle.terminate(session, EndReason.ALL_LEFT)

                return True
        except SessionNotFound:
            return False
