import asyncio
import unittest

from room_sync.backends.memory_backend import InMemoryBackend
from room_sync.codec import decode_event
from room_sync.errors import WriteError
from room_sync.models import Batch, MessageDraft, MessageRecord, Remove, Upsert


class InMemoryBackendTests(unittest.TestCase):
    def setUp(self) -> None:
        self._now = 100
        self.backend = InMemoryBackend(clock=self._clock)

    def _clock(self) -> int:
        self._now += 10
        return self._now

    def test_subscribe_replays_existing_messages_as_one_ordered_batch(self) -> None:
        self.backend.put("r", MessageRecord("b", "u", "U", "second", 2))
        self.backend.put("r", MessageRecord("a", "u", "U", "first", 1))

        received = []
        self.backend.subscribe("r", received.append)

        self.assertEqual(1, len(received))
        batch = decode_event(received[0])
        self.assertIsInstance(batch, Batch)
        self.assertEqual(["a", "b"], [decode_event(p).record.id for p in batch.payloads])

    def test_subscribe_to_empty_room_replays_nothing(self) -> None:
        received = []
        self.backend.subscribe("r", received.append)
        self.assertEqual([], received)

    def test_write_assigns_id_and_timestamp_and_fans_out(self) -> None:
        received = []
        self.backend.subscribe("r", received.append)

        message_id = asyncio.run(self.backend.write("r", MessageDraft("u1", "Ana", "hello")))

        self.assertEqual("m00000001", message_id)
        event = decode_event(received[0])
        self.assertIsInstance(event, Upsert)
        self.assertEqual(110, event.record.timestamp)
        self.assertEqual("hello", event.record.text)
        self.assertEqual([event.record], self.backend.messages("r"))

    def test_rooms_are_isolated(self) -> None:
        received = []
        self.backend.subscribe("a", received.append)
        asyncio.run(self.backend.write("b", MessageDraft("u1", "Ana", "elsewhere")))
        self.assertEqual([], received)

    def test_cancel_stops_delivery(self) -> None:
        received = []
        handle = self.backend.subscribe("r", received.append)
        handle.cancel()
        handle.cancel()

        self.backend.put("r", MessageRecord("a", "u", "U", "x", 1))
        self.assertEqual([], received)
        self.assertEqual(0, self.backend.listener_count("r"))

    def test_remove_is_published(self) -> None:
        self.backend.put("r", MessageRecord("a", "u", "U", "x", 1))
        received = []
        self.backend.subscribe("r", received.append)

        self.backend.remove("r", "a")

        self.assertEqual(Remove("a"), decode_event(received[-1]))
        self.assertEqual([], self.backend.messages("r"))

    def test_closed_backend_rejects_writes(self) -> None:
        async def scenario() -> None:
            await self.backend.close()
            with self.assertRaises(WriteError):
                await self.backend.write("r", MessageDraft("u1", "Ana", "late"))

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
