"""Error taxonomy for the background bridge.

Core modules raise these; the message router turns every one of them into an
`{"error": str}` response so nothing crosses a context boundary as an exception.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for failures reported back to the requesting context."""

    code = "bridge_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidInput(BridgeError):
    code = "invalid_input"


class SessionNotFound(BridgeError):
    code = "session_not_found"

    def __init__(self, message: str = "Upload session not found") -> None:
        super().__init__(message)


class InvalidChunk(BridgeError):
    code = "invalid_chunk"

    def __init__(self, message: str = "Invalid chunk payload") -> None:
        super().__init__(message)


class JobNotFound(BridgeError):
    code = "job_not_found"

    def __init__(self, message: str = "Print job not found") -> None:
        super().__init__(message)


class JobNotReady(BridgeError):
    code = "job_not_ready"

    def __init__(self, message: str = "Print job is not ready") -> None:
        super().__init__(message)


class ResourceCreationFailed(BridgeError):
    code = "resource_creation_failed"


_TERMINAL_MARKERS = ("receiving end does not exist",)


class CommunicationFailure(BridgeError):
    """A cross-context round-trip failed.

    `terminal` failures mean the other side is gone; anything else may be transient.
    """

    code = "communication_failure"

    @property
    def terminal(self) -> bool:
        text = self.message.lower()
        return any(marker in text for marker in _TERMINAL_MARKERS)


class ExternalCollaboratorFailure(BridgeError):
    """Cache, file or download collaborator error, passed through with its message."""

    code = "external_collaborator_failure"


__all__ = [
    "BridgeError",
    "CommunicationFailure",
    "ExternalCollaboratorFailure",
    "InvalidChunk",
    "InvalidInput",
    "JobNotFound",
    "JobNotReady",
    "ResourceCreationFailed",
    "SessionNotFound",
]
