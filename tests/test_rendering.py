import unittest
from datetime import datetime

from room_sync.models import MessageRecord
from room_sync.rendering import default_display_name, format_clock, format_message, sender_initial


class RenderingTests(unittest.TestCase):
    def test_default_display_name(self) -> None:
        self.assertEqual("User-c0de", default_display_name("abcdefc0de"))
        self.assertEqual("User-ab", default_display_name("ab"))

    def test_format_clock_uses_local_time(self) -> None:
        ts = datetime(2024, 5, 1, 9, 7).timestamp() * 1000
        self.assertEqual("09:07", format_clock(ts))

    def test_format_message_distinguishes_own_messages(self) -> None:
        ts = datetime(2024, 5, 1, 18, 30).timestamp() * 1000
        own = MessageRecord("1", "me", "Me", "hi", ts)
        other = MessageRecord("2", "u2", "bia", "hello", ts)

        self.assertEqual("[18:30] you: hi", format_message(own, local_user_id="me"))
        self.assertEqual("> [18:30] (B) bia: hello", format_message(other, local_user_id="me", line_prefix="> "))

    def test_sender_initial(self) -> None:
        self.assertEqual("", sender_initial(""))
        self.assertEqual("Á", sender_initial("ágata"))


if __name__ == "__main__":
    unittest.main()
