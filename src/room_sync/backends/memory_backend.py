from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from room_sync.backend import EventCallback
from room_sync.codec import batch_payload, upsert_payload
from room_sync.errors import WriteError
from room_sync.models import MessageDraft, MessageRecord


def _now_ms() -> int:
    return int(time.time() * 1000)


class _MemorySubscription:
    def __init__(self, backend: InMemoryBackend, room_name: str, on_event: EventCallback):
        self._backend = backend
        self._room_name = room_name
        self._on_event = on_event
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._backend._detach(self._room_name, self)

    def deliver(self, payload: Any) -> None:
        if self._active:
            self._on_event(payload)


class InMemoryBackend:
    """Process-local backend: one message map per room, synchronous fan-out.

    Subscribing replays the room's current messages as one batch, then
    delivers every later change. Ids are monotonic and timestamps are
    milliseconds taken from ``clock``.
    """

    def __init__(self, *, clock: Callable[[], float] | None = None):
        self._clock = clock or _now_ms
        self._rooms: dict[str, dict[str, MessageRecord]] = {}
        self._listeners: dict[str, list[_MemorySubscription]] = {}
        self._sequence = 0
        self._closed = False

    def subscribe(self, room_name: str, on_event: EventCallback) -> _MemorySubscription:
        subscription = _MemorySubscription(self, room_name, on_event)
        self._listeners.setdefault(room_name, []).append(subscription)
        existing = sorted(self._rooms.get(room_name, {}).values(), key=lambda r: r.order_key)
        logger.debug(f"Memory subscription to {room_name!r}, replaying {len(existing)} messages")
        if existing:
            subscription.deliver(batch_payload([upsert_payload(record) for record in existing]))
        return subscription

    async def write(self, room_name: str, draft: MessageDraft) -> str:
        if self._closed:
            raise WriteError("Backend is closed", room_name=room_name)
        self._sequence += 1
        record = MessageRecord(
            id=f"m{self._sequence:08d}",
            sender_id=draft.sender_id,
            sender_name=draft.sender_name,
            text=draft.text,
            timestamp=self._clock(),
        )
        self.put(room_name, record)
        return record.id

    def put(self, room_name: str, record: MessageRecord) -> None:
        """Store a fully formed record, as if another client had written it."""
        self._rooms.setdefault(room_name, {})[record.id] = record
        self.publish(room_name, upsert_payload(record))

    def remove(self, room_name: str, message_id: str) -> None:
        self._rooms.get(room_name, {}).pop(message_id, None)
        self.publish(room_name, {"op": "remove", "id": message_id})

    def publish(self, room_name: str, payload: Any) -> None:
        """Deliver a raw change payload to every live listener of the room."""
        for subscription in list(self._listeners.get(room_name, [])):
            subscription.deliver(payload)

    def messages(self, room_name: str) -> list[MessageRecord]:
        return sorted(self._rooms.get(room_name, {}).values(), key=lambda r: r.order_key)

    def listener_count(self, room_name: str) -> int:
        return len(self._listeners.get(room_name, []))

    async def close(self) -> None:
        self._closed = True
        for subscriptions in list(self._listeners.values()):
            for subscription in list(subscriptions):
                subscription.cancel()

    def _detach(self, room_name: str, subscription: _MemorySubscription) -> None:
        listeners = self._listeners.get(room_name, [])
        if subscription in listeners:
            listeners.remove(subscription)
        if not listeners:
            self._listeners.pop(room_name, None)
