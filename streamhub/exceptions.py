"""Custom exceptions raised by the streamhub package."""
from __future__ import annotations


class StreamHubError(RuntimeError):
    """Base error for the streamhub package."""


class SessionAlreadyExists(StreamHubError):
    """Raised when a session is created for an id that is already active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Stream session {session_id!r} already exists")
        self.session_id = session_id


class SessionNotFound(StreamHubError):
    """Raised when a session id is not present in the registry."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Stream session {session_id!r} not found")
        self.session_id = session_id


class InvalidStateTransition(StreamHubError):
    """Raised when a session is asked to move along a forbidden edge."""

    def __init__(self, session_id: str, current: object, target: object) -> None:
        super().__init__(f"Stream session {session_id!r} cannot move from {current} to {target}")
        self.session_id = session_id
        self.current = current
        self.target = target


class WorkerFailure(StreamHubError):
    """Raised when the FFmpeg worker cannot be launched or exits abnormally."""


class WorkerAlreadyRunning(StreamHubError):
    """Raised when a second worker is started for a session that still has one."""


class ArtifactIOFailure(StreamHubError):
    """Raised when a session output directory cannot be created or removed."""


__all__ = [
    "ArtifactIOFailure",
    "InvalidStateTransition",
    "SessionAlreadyExists",
    "SessionNotFound",
    "StreamHubError",
    "WorkerAlreadyRunning",
    "WorkerFailure",
]
