# Protocol Layer
# Wire contracts for the real-time channel

from callsync.protocol.messages import (
    InboundEvent,
    OutboundEvent,
    SignalKind,
    ClientMessage,
    ServerMessage,
    JoinSessionPayload,
    EndCallPayload,
    SignalMessage,
    create_session_state,
    create_call_started,
    create_user_joined,
    create_user_left,
    create_relayed_signal,
    create_timer_tick,
    create_time_warning,
    create_force_end_call,
    create_error_event,
)

__all__ = [
    "InboundEvent",
    "OutboundEvent",
    "SignalKind",
    "ClientMessage",
    "ServerMessage",
    "JoinSessionPayload",
    "EndCallPayload",
    "SignalMessage",
    "create_session_state",
    "create_call_started",
    "create_user_joined",
    "create_user_left",
    "create_relayed_signal",
    "create_timer_tick",
    "create_time_warning",
    "create_force_end_call",
    "create_error_event",
]
