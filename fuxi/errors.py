"""
Error taxonomy for the Fuxi session engine.

All errors are local and recoverable: the transport layer surfaces them to
the caller and the engine keeps running.
"""


class FuxiError(Exception):
    """Base class for every error raised by the engine."""
    pass


class SessionNotFound(FuxiError):
    """Raised when an operation references a session id that is not active."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionFull(FuxiError):
    """Raised when a new participant would exceed the session's capacity."""

    def __init__(self, session_id: str, max_participants: int):
        super().__init__(
            f"Session {session_id} is full ({max_participants} participants)"
        )
        self.session_id = session_id
        self.max_participants = max_participants


class InvalidReaction(FuxiError):
    """Raised when a reaction payload is malformed. Nothing is mutated."""
    pass


class RecommendationUnavailable(FuxiError):
    """Raised when catalog or preference data needed by a strategy is missing."""
    pass


class InvalidSettings(FuxiError, ValueError):
    """Raised when caller-supplied session settings have the wrong type or range."""
    pass
