# Session Authority
# Owns session records, their lifecycle state machine and the countdown rules

from callsync.session.session import (
    CallSession,
    CallStatus,
    EndReason,
    utcnow,
)
from callsync.session.errors import (
    CallSessionError,
    SessionNotFound,
    SessionExpired,
)
from callsync.session.store import SessionStore
from callsync.session.lifecycle import LifecycleController

__all__ = [
    "CallSession",
    "CallStatus",
    "EndReason",
    "utcnow",
    "CallSessionError",
    "SessionNotFound",
    "SessionExpired",
    "SessionStore",
    "LifecycleController",
]
