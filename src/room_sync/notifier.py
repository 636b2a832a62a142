from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    def notify(self, sender_name: str, text: str) -> bool:
        """Show a notification. Returns False when it was not delivered."""
        ...


class ConsoleNotifier:
    """Prints a notification line. Delivers nothing while disabled."""

    def __init__(self, *, line_prefix: str = "", enabled: bool = True):
        self._line_prefix = line_prefix
        self.enabled = enabled

    def notify(self, sender_name: str, text: str) -> bool:
        if not self.enabled:
            return False
        print(f"{self._line_prefix}\a[notification] New message from {sender_name}: {text}")
        return True


class NullNotifier:
    def notify(self, sender_name: str, text: str) -> bool:
        return False
