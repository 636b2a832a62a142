import asyncio
import unittest

from room_sync.backends.sse import SSEEvent, iter_sse_events


async def _lines(items: list[str]):
    for item in items:
        yield item


def _parse(lines: list[str]) -> list[SSEEvent]:
    async def collect() -> list[SSEEvent]:
        return [event async for event in iter_sse_events(_lines(lines))]

    return asyncio.run(collect())


class SSEParserTests(unittest.TestCase):
    def test_parses_named_events(self) -> None:
        events = _parse([
            "event: put",
            'data: {"path": "/", "data": null}',
            "",
            "event: keep-alive",
            "data: null",
            "",
        ])
        self.assertEqual(
            [
                SSEEvent(event="put", data='{"path": "/", "data": null}'),
                SSEEvent(event="keep-alive", data="null"),
            ],
            events,
        )

    def test_joins_multiline_data_and_keeps_id(self) -> None:
        events = _parse(["id: 7", "data: a", "data: b", ""])
        self.assertEqual([SSEEvent(event="message", data="a\nb", event_id="7")], events)

    def test_skips_comments_and_empty_frames(self) -> None:
        events = _parse([": heartbeat", "", "event: patch", "", "data:x", ""])
        self.assertEqual([SSEEvent(event="message", data="x")], events)

    def test_flushes_trailing_frame(self) -> None:
        events = _parse(["\ufeffevent: put", "data: 1"])
        self.assertEqual([SSEEvent(event="put", data="1")], events)


if __name__ == "__main__":
    unittest.main()
