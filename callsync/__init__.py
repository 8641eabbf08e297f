# CallSync - Session authority for time-boxed two-party calls
# Signaling relay, presence tracking and a server-side countdown over WebSocket

__version__ = "0.1.0"

__all__ = ["__version__"]
