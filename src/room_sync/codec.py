from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from room_sync.errors import DecodeError
from room_sync.models import Batch, MessageDraft, MessageRecord, Remove, StreamFailure, Upsert

SERVER_TIMESTAMP: dict[str, str] = {".sv": "timestamp"}


def decode_event(raw: Any) -> Upsert | Remove | StreamFailure | Batch:
    """Decode one raw change payload.

    A ``batch`` keeps its items raw so that a malformed entry can be dropped
    without losing the rest of the batch.
    """
    if not isinstance(raw, Mapping):
        raise DecodeError(f"Change event must be an object, got {type(raw).__name__}")

    op = raw.get("op")
    if op == "upsert":
        return Upsert(decode_message(raw.get("id"), raw.get("data")))
    if op == "remove":
        return Remove(_require_id(raw.get("id")))
    if op == "error":
        return StreamFailure(str(raw.get("message") or "subscription failed"))
    if op == "batch":
        events = raw.get("events")
        if not isinstance(events, list):
            raise DecodeError(f"Batch events must be a list, got {type(events).__name__}")
        return Batch(tuple(events))
    raise DecodeError(f"Unknown change op: {op!r}")


def decode_message(message_id: Any, data: Any) -> MessageRecord:
    mid = _require_id(message_id)
    if not isinstance(data, Mapping):
        raise DecodeError(f"Message {mid} has no body")

    timestamp = data.get("timestamp")
    # bool is an int subclass; reject it explicitly
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise DecodeError(f"Message {mid} has no usable timestamp: {timestamp!r}")

    return MessageRecord(
        id=mid,
        sender_id=str(data.get("senderId") or ""),
        sender_name=str(data.get("senderName") or ""),
        text=str(data.get("text") or ""),
        timestamp=timestamp,
    )


def encode_draft(draft: MessageDraft) -> dict[str, Any]:
    return {
        "senderId": draft.sender_id,
        "senderName": draft.sender_name,
        "text": draft.text,
        "timestamp": dict(SERVER_TIMESTAMP),
    }


def encode_record(record: MessageRecord) -> dict[str, Any]:
    return {
        "senderId": record.sender_id,
        "senderName": record.sender_name,
        "text": record.text,
        "timestamp": record.timestamp,
    }


def upsert_payload(record: MessageRecord) -> dict[str, Any]:
    return {"op": "upsert", "id": record.id, "data": encode_record(record)}


def batch_payload(payloads: list[Any]) -> dict[str, Any]:
    return {"op": "batch", "events": list(payloads)}


def _require_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DecodeError(f"Change event has no message id: {value!r}")
    return value
