from __future__ import annotations

import bisect
from collections.abc import Iterable

from room_sync.errors import DecodeError
from room_sync.models import MessageRecord, Remove, Upsert


class RoomFeed:
    """Ordered, deduplicated view of one room's messages.

    Entries are ordered by ``(timestamp, id)``; ``id`` only breaks timestamp
    ties. An upsert for a known id replaces the entry and re-positions it.
    ``snapshot()`` returns the tuple committed by the last change.
    """

    def __init__(self, room_name: str):
        self._room_name = room_name
        self._by_id: dict[str, MessageRecord] = {}
        self._keys: list[tuple[float, str]] = []
        self._snapshot: tuple[MessageRecord, ...] = ()

    @property
    def room_name(self) -> str:
        return self._room_name

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    def snapshot(self) -> tuple[MessageRecord, ...]:
        return self._snapshot

    def get(self, message_id: str) -> MessageRecord | None:
        return self._by_id.get(message_id)

    def apply(self, event: Upsert | Remove) -> bool:
        """Apply one change event. Returns True when the snapshot changed."""
        changed = self._apply(event)
        if changed:
            self._commit()
        return changed

    def apply_all(self, events: Iterable[Upsert | Remove]) -> bool:
        """Apply events in order and commit a single snapshot at the end."""
        changed = False
        try:
            for event in events:
                changed = self._apply(event) or changed
        finally:
            if changed:
                self._commit()
        return changed

    def _apply(self, event: Upsert | Remove) -> bool:
        if isinstance(event, Upsert):
            return self._upsert(event.record)
        if isinstance(event, Remove):
            return self._remove(event.message_id)
        raise DecodeError(f"Unsupported feed event: {event!r}", room_name=self._room_name)

    def _upsert(self, record: MessageRecord) -> bool:
        self._validate(record)
        existing = self._by_id.get(record.id)
        if existing == record:
            return False
        if existing is not None:
            self._drop_key(existing.order_key)
        bisect.insort(self._keys, record.order_key)
        self._by_id[record.id] = record
        return True

    def _remove(self, message_id: str) -> bool:
        existing = self._by_id.pop(message_id, None)
        if existing is None:
            return False
        self._drop_key(existing.order_key)
        return True

    def _drop_key(self, key: tuple[float, str]) -> None:
        index = bisect.bisect_left(self._keys, key)
        del self._keys[index]

    def _commit(self) -> None:
        self._snapshot = tuple(self._by_id[message_id] for _, message_id in self._keys)

    def _validate(self, record: MessageRecord) -> None:
        if not isinstance(record.id, str) or not record.id:
            raise DecodeError("Upsert is missing a message id", room_name=self._room_name)
        ts = record.timestamp
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            raise DecodeError(
                f"Upsert {record.id} is missing a timestamp",
                room_name=self._room_name,
            )
