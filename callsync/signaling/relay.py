"""
Signaling Relay

Forwards WebRTC negotiation messages (offer, answer, ICE candidates)
between the connections registered under a session.

The relay never interprets, validates, buffers or deduplicates the
negotiation body. Ordering is preserved per sender and recipient because
each recipient has a single FIFO outbound queue. When no peer is
connected the message is dropped; clients retry their own negotiation.
"""

import logging

from callsync.protocol.messages import SignalMessage, create_relayed_signal
from callsync.session.errors import SessionExpired
from callsync.session.lifecycle import LifecycleController

logger = logging.getLogger(__name__)


class SignalingRelay:
    """Fire-and-forget forwarding of negotiation messages."""

    def __init__(self, lifecycle: LifecycleController):
        self._lifecycle = lifecycle
        self._store = lifecycle.store

    async def relay(
        self,
        session_id: str,
        sender_user_id: str | None,
        message: SignalMessage,
        sender_conn_id: str | None = None,
    ) -> int:
        """
        Forward a negotiation message to every other participant.

        Args:
            session_id: Target session
            sender_user_id: User id of the sender (None if it never joined)
            message: Opaque negotiation message
            sender_conn_id: Sender's connection, also excluded from delivery

        Returns:
            Number of connections the message was queued for (0 = dropped)

        Raises:
            SessionNotFound: Unknown or purged session
            SessionExpired: Session already ended or expired
        """
        async with self._store.acquire(session_id) as session:
            if session.status.is_terminal:
                raise SessionExpired(session_id)

            recipients = [
                conn_id for user_id, conn_id in session.participants.items()
                if user_id != sender_user_id and conn_id != sender_conn_id
            ]
            if not recipients:
                logger.debug(
                    f"No peer connected in session {session_id}, "
                    f"{message.kind.value} from {sender_user_id} dropped"
                )
                return 0

            delivered = await self._lifecycle.outbox.broadcast(
                recipients,
                create_relayed_signal(message, sender_user_id).to_json()
            )

        logger.debug(
            f"Relayed {message.kind.value} from {sender_user_id} "
            f"in session {session_id} to {delivered} peer(s)"
        )
        return delivered
