from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from room_sync.backend import EventCallback, TokenProvider
from room_sync.backends.sse import iter_sse_events
from room_sync.codec import batch_payload, encode_draft
from room_sync.errors import AuthError, SubscriptionError, WriteError
from room_sync.models import MessageDraft
from room_sync.retrying import log_retry

_TERMINAL_EVENTS = {"cancel", "auth_revoked"}


class StreamClosed(Exception):
    """The server ended an event stream that should stay open."""


class AuthRevoked(StreamClosed):
    """The server revoked the stream credential; reconnect with a fresh token."""


class RoomMirror:
    """Tracks the ``messages`` subtree of one room from Realtime Database events.

    ``put`` replaces the value at a path, ``patch`` merges children into it.
    Each event is translated into raw change payloads (``upsert``/``remove``)
    carrying the full current value of the touched messages. Root-level
    events, including the initial load and every reconnect, come out as one
    ``batch``.
    """

    def __init__(self) -> None:
        self._children: dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._children)

    def apply(self, event_name: str, data: str) -> list[Any]:
        if event_name in _TERMINAL_EVENTS:
            return [{"op": "error", "message": f"Stream {event_name}: {data}"}]
        if event_name not in ("put", "patch"):
            return []

        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            # Forward as-is; the feed reports it as a decode error.
            return [data]
        if not isinstance(frame, dict) or not isinstance(frame.get("path"), str):
            return [frame]

        segments = [s for s in frame["path"].split("/") if s]
        value = frame.get("data")
        if event_name == "put":
            return self._put(segments, value)
        return self._patch(segments, value)

    def _put(self, segments: list[str], value: Any) -> list[Any]:
        if not segments:
            incoming = value if isinstance(value, dict) else {}
            changes: list[Any] = [
                {"op": "remove", "id": message_id}
                for message_id in list(self._children)
                if message_id not in incoming
            ]
            self._children = {}
            for message_id, child in incoming.items():
                changes.extend(self._set_child(message_id, child))
            return _as_batch(changes)

        message_id, rest = segments[0], segments[1:]
        if not rest:
            return self._set_child(message_id, value)

        child = self._children.get(message_id)
        child = dict(child) if isinstance(child, dict) else {}
        _assign(child, rest, value)
        return self._set_child(message_id, child or None)

    def _patch(self, segments: list[str], value: Any) -> list[Any]:
        if not isinstance(value, dict):
            return self._put(segments, value)

        changes: list[Any] = []
        if not segments:
            for message_id, child in value.items():
                changes.extend(self._set_child(message_id, child))
            return _as_batch(changes)

        for key, child_value in value.items():
            changes.extend(self._put(segments + [s for s in key.split("/") if s], child_value))
        return changes

    def _set_child(self, message_id: str, child: Any) -> list[Any]:
        if child is None:
            if self._children.pop(message_id, None) is None:
                return []
            return [{"op": "remove", "id": message_id}]
        self._children[message_id] = child
        return [{"op": "upsert", "id": message_id, "data": child}]


def _as_batch(changes: list[Any]) -> list[Any]:
    return [batch_payload(changes)] if changes else []


def _assign(target: dict, path: list[str], value: Any) -> None:
    head, rest = path[0], path[1:]
    if not rest:
        if value is None:
            target.pop(head, None)
        else:
            target[head] = value
        return
    nested = target.get(head)
    nested = dict(nested) if isinstance(nested, dict) else {}
    _assign(nested, rest, value)
    if nested:
        target[head] = nested
    else:
        target.pop(head, None)


class _StreamHandle:
    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()


class FirebaseBackend:
    """Firebase Realtime Database over its REST and streaming endpoints.

    Messages live at ``rooms/<room>/messages/<push id>``. The server assigns
    the push id on write and resolves the ``timestamp`` server value.

    With a ``token_provider`` the ID token is fetched before every write and
    every stream connection, and an ``auth_revoked`` event forces a refresh
    followed by a reconnect.
    """

    def __init__(
        self,
        database_url: str,
        *,
        id_token: str | None = None,
        timeout_seconds: float = 10.0,
        reconnect_attempts: int = 5,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._database_url = database_url.rstrip("/")
        self._id_token = id_token
        self._token_provider = token_provider
        self._token_revoked = False
        self._reconnect_attempts = max(1, reconnect_attempts)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, read=None),
            follow_redirects=True,
        )
        self._client_owned = client is None
        self._tasks: set[asyncio.Task] = set()

    def set_id_token(self, id_token: str | None) -> None:
        self._id_token = id_token

    def subscribe(self, room_name: str, on_event: EventCallback) -> _StreamHandle:
        task = asyncio.get_running_loop().create_task(self._listen(room_name, on_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return _StreamHandle(task)

    async def write(self, room_name: str, draft: MessageDraft) -> str:
        try:
            await self._sync_token()
        except AuthError as ex:
            raise WriteError(f"Could not refresh credentials: {ex}", room_name=room_name) from ex

        try:
            response = await self._client.post(
                self._messages_url(room_name),
                params=self._auth_params(),
                json=encode_draft(draft),
            )
        except httpx.HTTPError as ex:
            raise WriteError(f"Write request failed: {ex}", room_name=room_name) from ex

        if response.status_code >= 400:
            raise WriteError(
                f"HTTP {response.status_code} from realtime database: {response.text[:200]}",
                room_name=room_name,
            )
        name = response.json().get("name")
        if not name:
            raise WriteError("Write response missing the generated id", room_name=room_name)
        return str(name)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._client_owned:
            await self._client.aclose()

    async def _listen(self, room_name: str, on_event: EventCallback) -> None:
        mirror = RoomMirror()
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.TransportError, StreamClosed)),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            stop=stop_after_attempt(self._reconnect_attempts),
            before_sleep=log_retry,
            reraise=True,
        )
        try:
            await retrying(self._stream_once, room_name, mirror, on_event)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.warning(f"Realtime stream for room {room_name!r} gave up: {ex}")
            on_event({"op": "error", "message": f"Realtime stream failed: {ex}"})

    async def _stream_once(self, room_name: str, mirror: RoomMirror, on_event: EventCallback) -> None:
        await self._sync_token()
        async with self._client.stream(
            "GET",
            self._messages_url(room_name),
            params=self._auth_params(),
            headers={"Accept": "text/event-stream"},
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode(errors="ignore")[:200]
                raise SubscriptionError(
                    f"HTTP {response.status_code} from realtime database: {body}",
                    room_name=room_name,
                )

            logger.info(f"Realtime stream connected for room {room_name!r}")
            async for event in iter_sse_events(response.aiter_lines()):
                if event.event == "auth_revoked" and self._token_provider is not None:
                    self._token_revoked = True
                    raise AuthRevoked(f"Credential revoked on stream for room {room_name!r}")
                for payload in mirror.apply(event.event, event.data):
                    on_event(payload)
                if event.event in _TERMINAL_EVENTS:
                    return

        raise StreamClosed(f"Server closed the stream for room {room_name!r}")

    async def _sync_token(self) -> None:
        if self._token_provider is None:
            return
        force, self._token_revoked = self._token_revoked, False
        self.set_id_token(await self._token_provider(force))

    def _messages_url(self, room_name: str) -> str:
        return f"{self._database_url}/rooms/{quote(room_name, safe='')}/messages.json"

    def _auth_params(self) -> dict[str, str]:
        return {"auth": self._id_token} if self._id_token else {}
