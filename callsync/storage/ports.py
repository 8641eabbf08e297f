"""
Storage Port Interfaces

Abstract base classes defining the persistence contract for call sessions.
All persistence APIs are async. No sync DB calls allowed.

Persistence is a best-effort side-effect sink:
- Snapshots are written on creation, activation, warning and termination
- The service never reads them back at runtime
- A failing sink must never delay or fail a broadcast or state transition

Thread-safety: All implementations must be safe for concurrent async usage.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any


# =============================================================================
# Errors
# =============================================================================

class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class PersistenceError(StorageError):
    """A sink failed to write a snapshot."""
    pass


# =============================================================================
# Session Snapshot Sink
# =============================================================================

@dataclass
class SessionSnapshot:
    """
    Stored session data.

    This is a storage-level representation, decoupled from the CallSession model.
    """
    id: str
    caller_id: str | None
    callee_id: str | None
    channel_name: str
    duration_limit: int
    start_time: datetime | None
    status: str  # "pending", "active", "warning", "ended", "expired"
    warning_sent: bool
    end_reason: str | None
    created_at: datetime
    ended_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (datetimes as ISO strings)."""
        data = asdict(self)
        for key in ("start_time", "created_at", "ended_at"):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionSnapshot":
        """Inverse of to_dict."""
        values = dict(data)
        for key in ("start_time", "created_at", "ended_at"):
            raw = values.get(key)
            values[key] = datetime.fromisoformat(raw) if raw else None
        return cls(**values)


class SnapshotSink(ABC):
    """
    Storage interface for session snapshots.

    Writes are upserts keyed by session id.
    """

    @abstractmethod
    async def write(self, snapshot: SessionSnapshot) -> None:
        """
        Insert or replace the stored snapshot for snapshot.id.

        Raises:
            PersistenceError: If the backend rejects the write
        """
        ...

    @abstractmethod
    async def get(self, session_id: str) -> SessionSnapshot | None:
        """
        Read back a stored snapshot (audit tooling and tests only).

        Returns:
            Snapshot or None if never written
        """
        ...

    async def close(self) -> None:
        """Release backend connections."""
        return None
