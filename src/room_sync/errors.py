from __future__ import annotations


class ChatError(Exception):
    """Base class for errors scoped to a single room session."""

    def __init__(self, message: str, *, room_name: str | None = None):
        super().__init__(message)
        self.room_name = room_name


class DecodeError(ChatError):
    """A change event from the backend could not be decoded. Non-fatal."""


class SubscriptionError(ChatError):
    """The backend stream for a room failed."""


class ValidationError(ChatError):
    """Input was rejected before any backend call."""


class WriteError(ChatError):
    """The backend rejected or failed a send."""


class AuthError(ChatError):
    """No identity could be obtained from the auth collaborator."""
