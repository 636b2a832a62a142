from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from room_sync.models import MessageDraft

EventCallback = Callable[[Any], None]
# Called with ``force``; returns the ID token to use for the next request.
TokenProvider = Callable[[bool], Awaitable[str | None]]


@runtime_checkable
class SubscriptionHandle(Protocol):
    def cancel(self) -> None:
        """Stop delivery. May take effect after in-flight events have been delivered."""
        ...


@runtime_checkable
class ChatBackend(Protocol):
    def subscribe(self, room_name: str, on_event: EventCallback) -> SubscriptionHandle:
        """Start streaming raw change payloads for ``room_name`` into ``on_event``."""
        ...

    async def write(self, room_name: str, draft: MessageDraft) -> str:
        """Persist a message. Returns the backend-assigned id."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class IdentityProvider(Protocol):
    def current_identity(self) -> str: ...


def create_backend(
    backend_name: str,
    *,
    database_url: str = "",
    id_token: str | None = None,
    timeout_seconds: float = 10.0,
    reconnect_attempts: int = 5,
    token_provider: TokenProvider | None = None,
) -> ChatBackend:
    """Factory: create a ChatBackend by name."""
    name = backend_name.strip().lower()
    if name == "memory":
        from room_sync.backends.memory_backend import InMemoryBackend
        return InMemoryBackend()
    if name == "firebase":
        from room_sync.backends.firebase_backend import FirebaseBackend
        if not database_url:
            raise ValueError("The firebase backend requires FIREBASE_DATABASE_URL")
        return FirebaseBackend(
            database_url,
            id_token=id_token,
            timeout_seconds=timeout_seconds,
            reconnect_attempts=reconnect_attempts,
            token_provider=token_provider,
        )
    raise ValueError(f"Unknown backend: {backend_name!r}. Supported: 'memory', 'firebase'")
