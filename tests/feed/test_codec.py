import unittest

from room_sync.codec import batch_payload, decode_event, encode_draft, upsert_payload
from room_sync.errors import DecodeError
from room_sync.models import Batch, MessageDraft, MessageRecord, Remove, StreamFailure, Upsert


class CodecTests(unittest.TestCase):
    def test_decode_upsert(self) -> None:
        event = decode_event(
            {
                "op": "upsert",
                "id": "-Nabc",
                "data": {"senderId": "u1", "senderName": "Ana", "text": "olá", "timestamp": 1700000000000},
            }
        )
        self.assertEqual(
            Upsert(MessageRecord("-Nabc", "u1", "Ana", "olá", 1700000000000)),
            event,
        )

    def test_decode_remove_and_error(self) -> None:
        self.assertEqual(Remove("x"), decode_event({"op": "remove", "id": "x"}))
        self.assertEqual(StreamFailure("denied"), decode_event({"op": "error", "message": "denied"}))

    def test_missing_fields_default_to_empty_strings(self) -> None:
        event = decode_event({"op": "upsert", "id": "1", "data": {"timestamp": 5}})
        self.assertEqual("", event.record.text)
        self.assertEqual("", event.record.sender_id)

    def test_malformed_events_raise_decode_error(self) -> None:
        bad = [
            "not an object",
            {"op": "upsert", "data": {"timestamp": 1}},
            {"op": "upsert", "id": "  ", "data": {"timestamp": 1}},
            {"op": "upsert", "id": "1", "data": {"text": "no timestamp"}},
            {"op": "upsert", "id": "1", "data": {"timestamp": "yesterday"}},
            {"op": "upsert", "id": "1", "data": {"timestamp": True}},
            {"op": "upsert", "id": "1", "data": "text"},
            {"op": "remove"},
            {"op": "rename", "id": "1"},
            {"op": "batch"},
            {"op": "batch", "events": {"1": {}}},
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(DecodeError):
                    decode_event(raw)

    def test_decode_batch_keeps_items_raw(self) -> None:
        items = [{"op": "remove", "id": "x"}, "garbage"]
        self.assertEqual(Batch(({"op": "remove", "id": "x"}, "garbage")), decode_event(batch_payload(items)))

    def test_encode_draft_requests_server_timestamp(self) -> None:
        payload = encode_draft(MessageDraft("u1", "Ana", "hello"))
        self.assertEqual(
            {"senderId": "u1", "senderName": "Ana", "text": "hello", "timestamp": {".sv": "timestamp"}},
            payload,
        )

    def test_upsert_payload_decodes_back_to_the_record(self) -> None:
        record = MessageRecord("m1", "u1", "Ana", "hello", 12.5)
        self.assertEqual(Upsert(record), decode_event(upsert_payload(record)))


if __name__ == "__main__":
    unittest.main()
