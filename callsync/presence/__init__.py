# Presence Tracker
# Per-session participant/connection tracking with reconnect semantics

from callsync.presence.tracker import PresenceTracker, JoinResult

__all__ = ["PresenceTracker", "JoinResult"]
