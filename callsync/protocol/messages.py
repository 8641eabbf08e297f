"""
CallSync Wire Messages

Every frame on the real-time channel uses the same envelope:

    {"event": "<name>", "data": {...}}

The envelope provides:
- Event classification for dispatch before payload inspection
- A payload whose shape depends on the event

Negotiation payloads (offer, answer, candidate) are opaque to the service:
they are carried verbatim and never validated beyond "present".
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(str, Enum):
    """Events a client may send."""
    JOIN_SESSION = "join_session"
    WEBRTC_OFFER = "webrtc_offer"
    WEBRTC_ANSWER = "webrtc_answer"
    WEBRTC_ICE_CANDIDATE = "webrtc_ice_candidate"
    END_CALL = "end_call"


class OutboundEvent(str, Enum):
    """Events the service sends."""
    SESSION_STATE = "session_state"          # Current state, to a joiner
    CALL_STARTED = "call_started"            # Second participant joined
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    WEBRTC_OFFER = "webrtc_offer"            # Relayed
    WEBRTC_ANSWER = "webrtc_answer"          # Relayed
    WEBRTC_ICE_CANDIDATE = "webrtc_ice_candidate"  # Relayed
    TIMER_TICK = "timer_tick"                # 1 Hz
    TIME_WARNING = "time_warning"            # Once per session
    FORCE_END_CALL = "force_end_call"        # Once per session, terminal
    ERROR_EVENT = "error_event"


class SignalKind(str, Enum):
    """
    Negotiation message kinds handled by the relay.

    Value is the payload key carrying the opaque body.
    """
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "candidate"

    @property
    def outbound_event(self) -> OutboundEvent:
        return _SIGNAL_EVENTS[self]


_SIGNAL_EVENTS = {
    SignalKind.OFFER: OutboundEvent.WEBRTC_OFFER,
    SignalKind.ANSWER: OutboundEvent.WEBRTC_ANSWER,
    SignalKind.ICE_CANDIDATE: OutboundEvent.WEBRTC_ICE_CANDIDATE,
}

SIGNAL_KIND_BY_EVENT = {
    InboundEvent.WEBRTC_OFFER: SignalKind.OFFER,
    InboundEvent.WEBRTC_ANSWER: SignalKind.ANSWER,
    InboundEvent.WEBRTC_ICE_CANDIDATE: SignalKind.ICE_CANDIDATE,
}

TIME_WARNING_MESSAGE = "Call ending in 2 minutes!"


# =============================================================================
# Envelopes
# =============================================================================

class ClientMessage(BaseModel):
    """Inbound frame."""
    event: InboundEvent = Field(
        ...,
        description="Determines which handler processes the frame"
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific payload"
    )


class ServerMessage(BaseModel):
    """Outbound frame."""
    event: OutboundEvent
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json()


# =============================================================================
# Inbound payloads
# =============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JoinSessionPayload(_Payload):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)


class EndCallPayload(_Payload):
    session_id: str = Field(..., alias="sessionId", min_length=1)


class SignalMessage(_Payload):
    """
    A negotiation message as received from a client.

    `body` is whatever the client put under the kind's key
    (offer / answer / candidate); it is forwarded unmodified.
    """
    session_id: str = Field(..., alias="sessionId", min_length=1)
    kind: SignalKind
    body: Any = None

    @classmethod
    def from_client(cls, event: InboundEvent, data: dict[str, Any]) -> "SignalMessage":
        kind = SIGNAL_KIND_BY_EVENT[event]
        return cls.model_validate({
            "sessionId": data.get("sessionId"),
            "kind": kind,
            "body": data.get(kind.value),
        })


# =============================================================================
# Outbound constructors
# =============================================================================

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def create_session_state(state: dict[str, Any]) -> ServerMessage:
    """
    Current authoritative state, sent to a joining connection.

    `state` comes from CallSession.to_state_dict().
    """
    return ServerMessage(event=OutboundEvent.SESSION_STATE, data=state)


def create_call_started(
    start_time: datetime,
    duration_limit: int,
    time_remaining: int
) -> ServerMessage:
    """Both participants are present; the countdown has begun."""
    return ServerMessage(
        event=OutboundEvent.CALL_STARTED,
        data={
            "startTime": _iso(start_time),
            "durationLimit": duration_limit,
            "timeRemaining": time_remaining,
        }
    )


def create_user_joined(user_id: str) -> ServerMessage:
    return ServerMessage(event=OutboundEvent.USER_JOINED, data={"userId": user_id})


def create_user_left(user_id: str) -> ServerMessage:
    return ServerMessage(event=OutboundEvent.USER_LEFT, data={"userId": user_id})


def create_relayed_signal(message: SignalMessage, sender_user_id: str | None) -> ServerMessage:
    """Forward a negotiation message verbatim, tagged with its sender."""
    return ServerMessage(
        event=message.kind.outbound_event,
        data={
            message.kind.value: message.body,
            "from": sender_user_id,
        }
    )


def create_timer_tick(time_remaining: int, status: str) -> ServerMessage:
    return ServerMessage(
        event=OutboundEvent.TIMER_TICK,
        data={"timeRemaining": time_remaining, "status": status}
    )


def create_time_warning(time_remaining: int) -> ServerMessage:
    return ServerMessage(
        event=OutboundEvent.TIME_WARNING,
        data={"message": TIME_WARNING_MESSAGE, "timeRemaining": time_remaining}
    )


def create_force_end_call(reason: str, message: str) -> ServerMessage:
    """Terminal notice; sent at most once per session."""
    return ServerMessage(
        event=OutboundEvent.FORCE_END_CALL,
        data={"reason": reason, "message": message}
    )


def create_error_event(message: str) -> ServerMessage:
    return ServerMessage(event=OutboundEvent.ERROR_EVENT, data={"message": message})
