from __future__ import annotations

import functools
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger

from room_sync.backend import ChatBackend, SubscriptionHandle
from room_sync.codec import decode_event
from room_sync.errors import ChatError, DecodeError, SubscriptionError, ValidationError
from room_sync.models import Batch, MessageRecord, Remove, StreamFailure, Upsert
from room_sync.room_feed import RoomFeed


class SubscriptionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FAILED = "failed"


class RoomSubscription:
    """Owns the single live backend subscription of a chat session.

    Every subscription is tagged with a generation number. Events are routed
    through ``handle(generation, raw)`` and dropped unless their generation is
    the current one, so a cancelled stream that still delivers cannot reach
    the feed of the room that replaced it.
    """

    def __init__(
        self,
        backend: ChatBackend,
        *,
        on_change: Callable[[tuple[MessageRecord, ...]], None],
        on_reset: Callable[[str | None], None],
        on_error: Callable[[ChatError], None],
    ) -> None:
        self._backend = backend
        self._on_change = on_change
        self._on_reset = on_reset
        self._on_error = on_error
        self._generation = 0
        self._room_name: str | None = None
        self._feed: RoomFeed | None = None
        self._handle: SubscriptionHandle | None = None
        self._state = SubscriptionState.IDLE
        self._last_error: SubscriptionError | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def room_name(self) -> str | None:
        return self._room_name

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def last_error(self) -> SubscriptionError | None:
        return self._last_error

    @property
    def feed(self) -> RoomFeed | None:
        return self._feed

    def switch_to(self, room_name: str) -> bool:
        """Subscribe to ``room_name``. Returns False when it is already the live room."""
        name = room_name.strip()
        if not name:
            raise ValidationError("Room name must not be blank")
        if self._state is SubscriptionState.ACTIVE and name == self._room_name:
            return False

        self._cancel_handle()
        self._generation += 1
        generation = self._generation
        self._room_name = name
        self._feed = RoomFeed(name)
        self._state = SubscriptionState.ACTIVE
        self._last_error = None
        self._on_reset(name)
        logger.info(f"Subscribing to room {name!r} (generation={generation})")

        try:
            handle = self._backend.subscribe(name, functools.partial(self.handle, generation))
        except Exception as ex:
            self._fail(generation, SubscriptionError(f"Could not subscribe to {name!r}: {ex}", room_name=name))
            return True

        if generation == self._generation and self._state is SubscriptionState.ACTIVE:
            self._handle = handle
        else:
            # Superseded or failed while subscribing.
            _cancel_quietly(handle)
        return True

    def leave(self) -> None:
        if self._room_name is None and self._state is SubscriptionState.IDLE:
            return
        logger.info(f"Leaving room {self._room_name!r} (generation={self._generation})")
        self._cancel_handle()
        self._generation += 1
        self._room_name = None
        self._feed = None
        self._state = SubscriptionState.IDLE
        self._last_error = None
        self._on_reset(None)

    def close(self) -> None:
        self.leave()

    def handle(self, generation: int, raw: Any) -> None:
        if generation != self._generation:
            logger.debug(f"Discarding event from stale generation {generation} (current={self._generation})")
            return
        if self._state is not SubscriptionState.ACTIVE or self._feed is None:
            logger.debug(f"Discarding event for room {self._room_name!r} in state {self._state.value}")
            return

        room = self._feed.room_name
        try:
            event = decode_event(raw)
        except DecodeError as ex:
            self._report_malformed(room, ex)
            return

        if isinstance(event, StreamFailure):
            self._fail(generation, SubscriptionError(event.reason, room_name=room))
            return
        if isinstance(event, Batch):
            events = self._decode_batch(room, event)
            if isinstance(events, StreamFailure):
                self._fail(generation, SubscriptionError(events.reason, room_name=room))
                return
        else:
            events = [event]

        if self._feed.apply_all(events):
            self._on_change(self._feed.snapshot())
        else:
            logger.debug(f"No-op event in room {room!r}: {event}")

    def _decode_batch(self, room: str, batch: Batch) -> list[Upsert | Remove] | StreamFailure:
        """Decode batch items, dropping malformed ones. A stream failure inside the batch wins."""
        events: list[Upsert | Remove] = []
        for raw in batch.payloads:
            try:
                item = decode_event(raw)
            except DecodeError as ex:
                self._report_malformed(room, ex)
                continue
            if isinstance(item, StreamFailure):
                return item
            if isinstance(item, Batch):
                self._report_malformed(room, DecodeError("Nested batch"))
                continue
            events.append(item)
        logger.debug(f"Applying batch of {len(events)} events in room {room!r}")
        return events

    def _report_malformed(self, room: str, error: DecodeError) -> None:
        error.room_name = room
        logger.warning(f"Dropped malformed event in room {room!r}: {error}")
        self._on_error(error)

    def _fail(self, generation: int, error: SubscriptionError) -> None:
        if generation != self._generation:
            return
        logger.warning(f"Subscription to room {error.room_name!r} failed: {error}")
        self._state = SubscriptionState.FAILED
        self._last_error = error
        self._cancel_handle()
        self._on_error(error)

    def _cancel_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            _cancel_quietly(handle)


def _cancel_quietly(handle: SubscriptionHandle) -> None:
    try:
        handle.cancel()
    except Exception as ex:
        logger.warning(f"Cancelling subscription handle failed: {ex}")
