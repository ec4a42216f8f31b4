from enum import Enum


class OverflowPolicy(str, Enum):
    """What a session does when its outbound queue is full."""
    DROP_OLDEST = "drop_oldest"
    DROP_SESSION = "drop_session"


class DuplicateSessionError(Exception):
    """Raised when a session id is registered twice."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is already registered")


class HubClosedError(Exception):
    """Raised when an event is submitted to a hub that is not running."""
