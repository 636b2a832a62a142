from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_room: Callable[[str], Awaitable[None]],
        on_leave: Callable[[], Awaitable[None]],
        on_name: Callable[[str], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_room = on_room
        self._on_leave = on_leave
        self._on_name = on_name
        self._on_unknown = on_unknown

    async def try_handle(self, line: str) -> bool:
        trimmed = line.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, argument = trimmed.partition(" ")
        if command == "/help":
            await self._on_help()
            return True
        if command == "/room":
            await self._on_room(argument.strip())
            return True
        if command == "/leave":
            await self._on_leave()
            return True
        if command == "/name":
            await self._on_name(argument.strip())
            return True

        self._on_unknown(trimmed)
        return True
