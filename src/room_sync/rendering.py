from __future__ import annotations

from datetime import datetime

from room_sync.models import MessageRecord


def default_display_name(user_id: str) -> str:
    return f"User-{user_id[-4:]}"


def format_clock(timestamp_ms: float) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%H:%M")


def sender_initial(sender_name: str) -> str:
    return sender_name[:1].upper()


def format_message(record: MessageRecord, *, local_user_id: str, line_prefix: str = "") -> str:
    clock = format_clock(record.timestamp)
    if record.sender_id == local_user_id:
        return f"{line_prefix}[{clock}] you: {record.text}"
    badge = sender_initial(record.sender_name) or "?"
    return f"{line_prefix}[{clock}] ({badge}) {record.sender_name}: {record.text}"
