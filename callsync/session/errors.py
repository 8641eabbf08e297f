"""
Session Errors

Rejections surfaced to clients as error_event messages.
"""


class CallSessionError(Exception):
    """Base class for operations rejected because of session state."""

    message = "Session error"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"{self.message} ({session_id})")


class SessionNotFound(CallSessionError):
    """Unknown or already purged session id."""

    message = "Session not found"


class SessionExpired(CallSessionError):
    """Session is ended or expired; clients must not retry."""

    message = "Session has expired. Cannot rejoin."
