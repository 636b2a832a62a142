from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MessageRecord:
    id: str
    sender_id: str
    sender_name: str
    text: str
    timestamp: float

    @property
    def order_key(self) -> tuple[float, str]:
        return (self.timestamp, self.id)


@dataclass(frozen=True)
class MessageDraft:
    """A message as composed locally, before the backend assigns id and timestamp."""

    sender_id: str
    sender_name: str
    text: str


@dataclass(frozen=True)
class Upsert:
    record: MessageRecord


@dataclass(frozen=True)
class Remove:
    message_id: str


@dataclass(frozen=True)
class StreamFailure:
    reason: str


FeedEvent = Upsert | Remove


@dataclass(frozen=True)
class Batch:
    """Raw change payloads that land together, such as the initial load of a room.

    They are applied in order and committed as a single snapshot.
    """

    payloads: tuple[Any, ...]
