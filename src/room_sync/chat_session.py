from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

from room_sync.backend import ChatBackend
from room_sync.errors import ChatError, ValidationError, WriteError
from room_sync.models import MessageDraft, MessageRecord
from room_sync.new_message_detector import NewMessageDetector
from room_sync.rendering import default_display_name
from room_sync.room_subscription import RoomSubscription, SubscriptionState

SnapshotListener = Callable[[tuple[MessageRecord, ...]], None]
MessageListener = Callable[[MessageRecord], None]
ErrorListener = Callable[[ChatError], None]


class ChatSession:
    """Public surface for a presentation layer.

    Read side: ``observe`` pushes every committed snapshot of the active room,
    ``on_new_message`` pushes detector events. Write side: ``send`` goes
    straight to the backend and never touches the feed. Failures of either
    side are delivered to ``on_error`` listeners.
    """

    def __init__(self, backend: ChatBackend, local_user_id: str, *, display_name: str | None = None):
        self._backend = backend
        self._local_user_id = local_user_id
        self._display_name = display_name or default_display_name(local_user_id)
        self._detector = NewMessageDetector(local_user_id)
        self._subscription = RoomSubscription(
            backend,
            on_change=self._on_feed_changed,
            on_reset=self._on_room_reset,
            on_error=self._report,
        )
        self._snapshot: tuple[MessageRecord, ...] = ()
        self._observers: list[SnapshotListener] = []
        self._message_listeners: list[MessageListener] = []
        self._error_listeners: list[ErrorListener] = []
        self._pending_sends: set[asyncio.Task] = set()

    @property
    def local_user_id(self) -> str:
        return self._local_user_id

    @property
    def display_name(self) -> str:
        return self._display_name

    @display_name.setter
    def display_name(self, value: str) -> None:
        name = value.strip()
        if not name:
            raise ValidationError("Display name must not be blank")
        self._display_name = name

    @property
    def active_room(self) -> str | None:
        return self._subscription.room_name

    @property
    def state(self) -> SubscriptionState:
        return self._subscription.state

    @property
    def messages(self) -> tuple[MessageRecord, ...]:
        return self._snapshot

    @property
    def last_seen_id(self) -> str | None:
        return self._detector.last_seen_id

    def switch_room(self, room_name: str) -> bool:
        try:
            return self._subscription.switch_to(room_name)
        except ValidationError as ex:
            self._report(ex)
            return False

    def leave_room(self) -> None:
        self._subscription.leave()

    def observe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._observers.append(listener)
        self._dispatch(listener, self._snapshot)
        return lambda: _discard(self._observers, listener)

    def on_new_message(self, listener: MessageListener) -> Callable[[], None]:
        self._message_listeners.append(listener)
        return lambda: _discard(self._message_listeners, listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)
        return lambda: _discard(self._error_listeners, listener)

    def acknowledge_notified(self, message_id: str) -> None:
        self._detector.mark_notified(message_id)

    def send(
        self,
        text: str,
        *,
        sender_id: str | None = None,
        sender_name: str | None = None,
    ) -> asyncio.Task | None:
        """Queue a write to the active room.

        Returns the write task, or None when the message was rejected locally.
        The task resolves to the backend-assigned id, or None after a WriteError
        was reported.
        """
        room = self._subscription.room_name
        if not text.strip():
            self._report(ValidationError("Message text must not be blank", room_name=room))
            return None
        if room is None:
            self._report(ValidationError("No room selected"))
            return None

        draft = MessageDraft(
            sender_id=sender_id or self._local_user_id,
            sender_name=sender_name or self._display_name,
            text=text,
        )
        task = asyncio.get_running_loop().create_task(self._write(room, draft))
        self._pending_sends.add(task)
        task.add_done_callback(self._pending_sends.discard)
        return task

    async def close(self) -> None:
        self._subscription.close()
        if self._pending_sends:
            await asyncio.gather(*self._pending_sends, return_exceptions=True)

    async def _write(self, room: str, draft: MessageDraft) -> str | None:
        try:
            message_id = await self._backend.write(room, draft)
        except asyncio.CancelledError:
            raise
        except WriteError as ex:
            ex.room_name = ex.room_name or room
            logger.error(f"Send to room {room!r} failed: {ex}")
            self._report(ex)
            return None
        except Exception as ex:
            logger.error(f"Send to room {room!r} failed: {ex}")
            self._report(WriteError(f"Send failed: {ex}", room_name=room))
            return None
        logger.debug(f"Message {message_id} written to room {room!r}")
        return message_id

    def _on_room_reset(self, room_name: str | None) -> None:
        self._detector.reset()
        self._snapshot = ()
        for listener in list(self._observers):
            self._dispatch(listener, self._snapshot)

    def _on_feed_changed(self, snapshot: tuple[MessageRecord, ...]) -> None:
        self._snapshot = snapshot
        for listener in list(self._observers):
            self._dispatch(listener, snapshot)

        candidate = self._detector.observe(snapshot)
        if candidate is not None:
            logger.debug(f"New message {candidate.id} from {candidate.sender_name!r}")
            for listener in list(self._message_listeners):
                self._dispatch(listener, candidate)

    def _report(self, error: ChatError) -> None:
        for listener in list(self._error_listeners):
            self._dispatch(listener, error)

    def _dispatch(self, listener: Callable, value: object) -> None:
        try:
            listener(value)
        except Exception as ex:
            # A failing listener must not break event ingestion.
            logger.exception(f"Session listener {listener!r} raised: {ex}")


def _discard(listeners: list, listener: Callable) -> None:
    if listener in listeners:
        listeners.remove(listener)
