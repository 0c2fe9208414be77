"""
Timestamp helpers.

Provides:
- Millisecond epoch timestamps used by every stored record
- UTC calendar-day derivation for daily rankings
"""

from datetime import datetime, timezone
import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current time as integer milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def utc_day(timestamp_ms: int) -> str:
    """
    UTC calendar day of a millisecond timestamp.

    Examples:
        0 -> "1970-01-01"
        1760572800000 -> "2025-10-16"
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date().isoformat()
