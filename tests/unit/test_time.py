# PATH: tests/unit/test_time.py
"""
Unit tests for time utilities.
"""

import time
import unittest

from core.time import format_block_time, now_ms


class TestTimeHelpers(unittest.TestCase):

    def test_now_ms(self):
        """now_ms tracks wall clock in milliseconds."""
        before = int(time.time() * 1000)
        value = now_ms()
        after = int(time.time() * 1000)
        self.assertTrue(before <= value <= after)

    def test_format_block_time(self):
        self.assertEqual(format_block_time(1767225600), "2026-01-01 00:00:00 UTC")

    def test_format_block_time_epoch(self):
        self.assertEqual(format_block_time(0), "1970-01-01 00:00:00 UTC")


if __name__ == "__main__":
    unittest.main()
