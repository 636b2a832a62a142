from __future__ import annotations

from room_sync.chat_session import ChatSession
from room_sync.commands.router import CommandRouter
from room_sync.errors import ChatError, ValidationError
from room_sync.models import MessageRecord
from room_sync.notifier import Notifier, NullNotifier
from room_sync.rendering import format_message


class ChatConsole:
    """Line-oriented front end for a ChatSession.

    Prints each message once per room visit, in arrival order, and turns
    detector events into notifications. A message is acknowledged only once
    its notification has been delivered.
    """

    _LINE_PREFIX = "chat> "

    def __init__(self, session: ChatSession, *, notifier: Notifier | None = None):
        self._session = session
        self._notifier = notifier or NullNotifier()
        self._printed_ids: set[str] = set()
        self._room_shown: str | None = None
        self._unsubscribes = [
            session.observe(self._on_snapshot),
            session.on_new_message(self._on_new_message),
            session.on_error(self._on_error),
        ]
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_room=self._on_room,
            on_leave=self._on_leave,
            on_name=self._on_name,
            on_unknown=self._on_unknown_command,
        )

    @property
    def prompt(self) -> str:
        room = self._session.active_room
        return f"{room}> " if room else "room? "

    async def handle_line(self, line: str) -> None:
        if await self._command_router.try_handle(line):
            return
        if self._session.active_room is None:
            # Like the room picker: plain input selects a room.
            await self._on_room(line.strip())
            return
        task = self._session.send(line)
        if task is not None:
            await task

    def detach(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes = []

    def _on_snapshot(self, snapshot: tuple[MessageRecord, ...]) -> None:
        room = self._session.active_room
        if room != self._room_shown:
            self._room_shown = room
            self._printed_ids = set()
            if room is not None:
                print(f"{self._LINE_PREFIX}Room: {room}")
        for record in snapshot:
            if record.id in self._printed_ids:
                continue
            self._printed_ids.add(record.id)
            print(format_message(record, local_user_id=self._session.local_user_id))

    def _on_new_message(self, record: MessageRecord) -> None:
        if self._notifier.notify(record.sender_name, record.text):
            self._session.acknowledge_notified(record.id)

    def _on_error(self, error: ChatError) -> None:
        print(f"{self._LINE_PREFIX}{type(error).__name__}: {error}")

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Available commands:")
        print(f"{self._LINE_PREFIX}- /help")
        print(f"{self._LINE_PREFIX}- /room <name>   switch to a room")
        print(f"{self._LINE_PREFIX}- /leave         leave the current room")
        print(f"{self._LINE_PREFIX}- /name <name>   change your display name")
        print(f"{self._LINE_PREFIX}- exit | quit")

    async def _on_room(self, room_name: str) -> None:
        if not room_name:
            print(f"{self._LINE_PREFIX}Usage: /room <name>")
            return
        if not self._session.switch_room(room_name):
            if self._session.active_room == room_name.strip():
                print(f"{self._LINE_PREFIX}Already in {room_name.strip()}")

    async def _on_leave(self) -> None:
        room = self._session.active_room
        if room is None:
            print(f"{self._LINE_PREFIX}Not in a room")
            return
        self._session.leave_room()
        print(f"{self._LINE_PREFIX}Left {room}")

    async def _on_name(self, name: str) -> None:
        try:
            self._session.display_name = name
        except ValidationError as ex:
            print(f"{self._LINE_PREFIX}{ex}")
            return
        print(f"{self._LINE_PREFIX}You are now {self._session.display_name}")

    def _on_unknown_command(self, trimmed: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {trimmed}")
