# Timer Authority
# Server-authoritative 1 Hz countdown sweep

from callsync.timer.authority import TimerAuthority

__all__ = ["TimerAuthority"]
