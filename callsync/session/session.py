"""
Call Session Model

Represents a single time-boxed two-party call.
The session record is the authoritative source for the countdown:
remaining time is always derived from start_time and the current
wall clock, never from a decrementing counter.

Session Lifecycle:
1. PENDING - Created, waiting for both participants
2. ACTIVE - Both participants joined, countdown running
3. WARNING - Two-minute warning sent, countdown still running
4. ENDED / EXPIRED - Terminal, no further transitions or rejoining
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from callsync.storage.ports import SessionSnapshot


def utcnow() -> datetime:
    """Timezone-aware current UTC time (default clock)."""
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Session lifecycle states."""
    PENDING = "pending"    # Created, fewer than two participants so far
    ACTIVE = "active"      # Countdown running
    WARNING = "warning"    # Countdown running, warning already broadcast
    ENDED = "ended"        # Manual end or everyone left
    EXPIRED = "expired"    # Countdown reached zero

    @property
    def is_terminal(self) -> bool:
        return self in (CallStatus.ENDED, CallStatus.EXPIRED)

    @property
    def is_running(self) -> bool:
        return self in (CallStatus.ACTIVE, CallStatus.WARNING)


class EndReason(str, Enum):
    """Why a session reached a terminal state."""
    MANUAL = "manual"
    ALL_LEFT = "all_left"
    TIMEOUT = "timeout"

    @property
    def message(self) -> str:
        """Human-readable notice sent with force_end_call."""
        if self == EndReason.TIMEOUT:
            return "Session time limit reached. Call ended."
        if self == EndReason.ALL_LEFT:
            return "All participants left. Call ended."
        return "Call ended by participant."

    @property
    def final_status(self) -> CallStatus:
        return CallStatus.EXPIRED if self == EndReason.TIMEOUT else CallStatus.ENDED


class CallSession(BaseModel):
    """
    A time-boxed call between two participants.

    Mutated only while holding the session's lock in the SessionStore.
    """

    # === Identity ===
    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Opaque session identifier"
    )
    caller_id: str | None = Field(
        default=None,
        description="User who requested the call"
    )
    callee_id: str | None = Field(
        default=None,
        description="User who was invited"
    )

    # === Participants ===
    participants: dict[str, str] = Field(
        default_factory=dict,
        description="user_id -> conn_id of the current connection (last one wins)"
    )

    # === Countdown ===
    duration_limit: int = Field(
        ...,
        ge=1,
        description="Call length in minutes"
    )
    start_time: datetime | None = Field(
        default=None,
        description="When the second participant joined"
    )

    # === Lifecycle ===
    status: CallStatus = Field(
        default=CallStatus.PENDING,
        description="Current lifecycle status"
    )
    warning_sent: bool = Field(
        default=False,
        description="Whether the time warning has been broadcast"
    )
    end_reason: EndReason | None = Field(
        default=None,
        description="Why the session ended"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the session was created"
    )
    ended_at: datetime | None = Field(
        default=None,
        description="When the session reached a terminal state"
    )

    @property
    def channel_name(self) -> str:
        """Media channel name handed to clients."""
        return f"call_{self.id.replace('-', '')[:16]}"

    @property
    def duration_seconds(self) -> int:
        return self.duration_limit * 60

    def time_remaining(self, now: datetime) -> int:
        """
        Seconds left on the countdown at `now`.

        Full duration while pending; clamped at zero once the limit passes.
        """
        if self.start_time is None:
            return self.duration_seconds
        elapsed = max(0, math.floor((now - self.start_time).total_seconds()))
        return max(0, self.duration_seconds - elapsed)

    def connection_ids(self, exclude: str | None = None) -> list[str]:
        """Connections currently registered, optionally skipping one."""
        return [c for c in self.participants.values() if c != exclude]

    def to_state_dict(self, now: datetime) -> dict[str, Any]:
        """Payload for session_state sent to a joining connection."""
        return {
            "status": self.status.value,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "durationLimit": self.duration_limit,
            "timeRemaining": self.time_remaining(now),
            "participants": list(self.participants.keys()),
        }

    def to_snapshot(self) -> SessionSnapshot:
        """Storage-level copy for the persistence sink."""
        return SessionSnapshot(
            id=self.id,
            caller_id=self.caller_id,
            callee_id=self.callee_id,
            channel_name=self.channel_name,
            duration_limit=self.duration_limit,
            start_time=self.start_time,
            status=self.status.value,
            warning_sent=self.warning_sent,
            end_reason=self.end_reason.value if self.end_reason else None,
            created_at=self.created_at,
            ended_at=self.ended_at,
        )

    def to_summary_dict(self) -> dict[str, Any]:
        """Return a summary for logging/debugging."""
        return {
            "id": self.id,
            "status": self.status.value,
            "participants": len(self.participants),
            "duration_limit": self.duration_limit,
            "start_time": self.start_time.isoformat() if self.start_time else None,
        }
