from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass


@dataclass
class SSEEvent:
    event: str
    data: str
    event_id: str | None = None


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Parse Server-Sent Events framing from an async iterator of lines.

    A blank line dispatches the pending frame; lines starting with ``:`` are
    comments. Multiple ``data:`` lines are joined with newlines.
    """
    data_lines: list[str] = []
    event_name: str | None = None
    event_id: str | None = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n").lstrip("\ufeff")

        if line == "":
            if data_lines:
                yield SSEEvent(event=event_name or "message", data="\n".join(data_lines), event_id=event_id)
            data_lines = []
            event_name = None
            event_id = None
            continue

        if line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value

    if data_lines:
        yield SSEEvent(event=event_name or "message", data="\n".join(data_lines), event_id=event_id)
