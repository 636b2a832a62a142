from room_sync.backends.memory_backend import InMemoryBackend
from room_sync.backends.sse import SSEEvent, iter_sse_events

__all__ = [
    "InMemoryBackend",
    "SSEEvent",
    "iter_sse_events",
]
