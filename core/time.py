# PATH: core/time.py
"""
Time utilities.
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def format_block_time(timestamp: int) -> str:
    """
    Format a block timestamp (Unix seconds) for log output.

    Example:
        format_block_time(1767225600) -> "2026-01-01 00:00:00 UTC"
    """
    block_time = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return block_time.strftime("%Y-%m-%d %H:%M:%S UTC")
