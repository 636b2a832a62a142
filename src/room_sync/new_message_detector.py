from __future__ import annotations

from collections.abc import Sequence

from room_sync.models import MessageRecord


class NewMessageDetector:
    """Decides whether the newest entry of a feed snapshot deserves a notification.

    Only the trailing message of each snapshot is considered, so several
    messages landing between two observations surface at most one event.
    The first non-empty snapshot after a reset seeds ``last_seen_id``
    without emitting.
    """

    def __init__(self, local_user_id: str):
        self._local_user_id = local_user_id
        self._last_seen_id: str | None = None
        self._emitted: set[str] = set()
        self._seeded = False

    @property
    def local_user_id(self) -> str:
        return self._local_user_id

    @property
    def last_seen_id(self) -> str | None:
        return self._last_seen_id

    def reset(self) -> None:
        self._last_seen_id = None
        self._emitted.clear()
        self._seeded = False

    def observe(self, snapshot: Sequence[MessageRecord]) -> MessageRecord | None:
        if not snapshot:
            return None

        newest = snapshot[-1]
        if not self._seeded:
            self._seeded = True
            self._last_seen_id = newest.id
            return None

        if newest.sender_id == self._local_user_id:
            return None
        if newest.id == self._last_seen_id or newest.id in self._emitted:
            return None

        self._emitted.add(newest.id)
        return newest

    def mark_notified(self, message_id: str) -> None:
        self._last_seen_id = message_id
