"""
WebSocket Handler

The real-time channel of the session authority.
Every participant holds one WebSocket connection and addresses sessions
by id in each frame.

Supported events:
- join_session -> session_state (+ user_joined / call_started to the session)
- webrtc_offer / webrtc_answer / webrtc_ice_candidate -> relayed to the peer
- end_call -> force_end_call to the session
- disconnect (socket close) -> user_left, possibly force_end_call(all_left)

Rejected operations (unknown or finished session) are answered with
error_event on the sender's connection only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from callsync.presence import PresenceTracker
from callsync.protocol.messages import (
    ClientMessage,
    InboundEvent,
    JoinSessionPayload,
    EndCallPayload,
    SignalMessage,
    create_error_event,
)
from callsync.session import CallSessionError, EndReason, LifecycleController
from callsync.signaling import SignalingRelay
from callsync.transport.queue import ConnectionQueueManager

logger = logging.getLogger(__name__)


@dataclass
class ConnectionState:
    """What the service knows about one connection."""
    conn_id: str
    session_id: str | None = None
    user_id: str | None = None


class WebSocketHandler:
    """
    Handles WebSocket connections and event dispatch.

    Outbound frames always go through the connection's queue so that
    session broadcasts and direct replies keep a single send order.
    """

    def __init__(
        self,
        lifecycle: LifecycleController,
        presence: PresenceTracker,
        relay: SignalingRelay,
        queue_manager: ConnectionQueueManager,
    ):
        """
        Initialize the handler.

        Args:
            lifecycle: Lifecycle controller for explicit end requests
            presence: Presence tracker for join/leave
            relay: Signaling relay for negotiation messages
            queue_manager: Per-connection outbound queues
        """
        self._lifecycle = lifecycle
        self._presence = presence
        self._relay = relay
        self._queues = queue_manager

        self._handlers: dict[
            InboundEvent,
            Callable[[ConnectionState, ClientMessage], Awaitable[None]]
        ] = {
            InboundEvent.JOIN_SESSION: self._handle_join,
            InboundEvent.WEBRTC_OFFER: self._handle_signal,
            InboundEvent.WEBRTC_ANSWER: self._handle_signal,
            InboundEvent.WEBRTC_ICE_CANDIDATE: self._handle_signal,
            InboundEvent.END_CALL: self._handle_end_call,
        }

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Handle a WebSocket connection lifecycle.

        Args:
            websocket: The WebSocket connection
        """
        await websocket.accept()

        conn = ConnectionState(conn_id=f"conn_{uuid4().hex[:12]}")
        await self._queues.register(conn.conn_id, websocket.send_text)
        logger.info(f"Connected: {conn.conn_id}")

        try:
            while True:
                data = await websocket.receive_text()
                await self.handle_frame(conn, data)

        except WebSocketDisconnect:
            logger.info(f"Disconnected: {conn.conn_id}")

        except Exception as e:
            logger.error(f"WebSocket error on {conn.conn_id}: {e}")

        finally:
            await self.handle_disconnect(conn)

    async def handle_frame(self, conn: ConnectionState, data: str) -> None:
        """Parse one inbound frame and dispatch it."""
        try:
            message = ClientMessage.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Invalid frame from {conn.conn_id}: {e.error_count()} error(s)")
            await self._send_error(conn, f"Invalid message: {_first_error(e)}")
            return

        handler = self._handlers[message.event]
        try:
            await handler(conn, message)
        except ValidationError as e:
            logger.warning(
                f"Invalid {message.event.value} payload from {conn.conn_id}: {e.error_count()} error(s)"
            )
            await self._send_error(conn, f"Invalid message: {_first_error(e)}")
        except CallSessionError as e:
            logger.info(
                f"{message.event.value} rejected for {conn.conn_id}: {e}"
            )
            await self._send_error(conn, e.message)

    async def handle_disconnect(self, conn: ConnectionState) -> None:
        """Leave the joined session (if any) and tear down the outbound queue."""
        try:
            if conn.session_id and conn.user_id:
                await self._presence.leave(conn.session_id, conn.user_id, conn.conn_id)
        finally:
            await self._queues.unregister(conn.conn_id)

    async def _send_error(self, conn: ConnectionState, message: str) -> None:
        await self._queues.broadcast([conn.conn_id], create_error_event(message).to_json())

    # =========================================================================
    # Event handlers
    # =========================================================================

    async def _handle_join(self, conn: ConnectionState, message: ClientMessage) -> None:
        payload = JoinSessionPayload.model_validate(message.data)

        # A rejected join raises here and leaves the current binding untouched
        await self._presence.join(payload.session_id, payload.user_id, conn.conn_id)

        # A connection belongs to one session at a time
        previous = (conn.session_id, conn.user_id)
        conn.session_id = payload.session_id
        conn.user_id = payload.user_id
        if previous[0] and previous[1] and previous != (conn.session_id, conn.user_id):
            await self._presence.leave(previous[0], previous[1], conn.conn_id)

    async def _handle_signal(self, conn: ConnectionState, message: ClientMessage) -> None:
        signal = SignalMessage.from_client(message.event, message.data)
        await self._relay.relay(
            signal.session_id,
            conn.user_id,
            signal,
            sender_conn_id=conn.conn_id,
        )

    async def _handle_end_call(self, conn: ConnectionState, message: ClientMessage) -> None:
        payload = EndCallPayload.model_validate(message.data)
        ended = await self._lifecycle.end_session(payload.session_id, EndReason.MANUAL)
        if ended:
            logger.info(f"Session {payload.session_id} ended by {conn.user_id or conn.conn_id}")


def _first_error(error: ValidationError) -> str:
    details = error.errors()
    if not details:
        return str(error)
    first = details[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
