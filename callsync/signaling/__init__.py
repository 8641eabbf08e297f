# Signaling Relay
# Verbatim forwarding of WebRTC negotiation messages between participants

from callsync.signaling.relay import SignalingRelay

__all__ = ["SignalingRelay"]
