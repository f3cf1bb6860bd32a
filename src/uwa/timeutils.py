"""Epoch-millisecond clock helpers.

Timestamps in this service are integer milliseconds since the Unix epoch,
the same unit the web client stores in backups and certificates.
"""

from __future__ import annotations

import time

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def hours_to_ms(hours: float) -> int:
    return int(hours * MS_PER_HOUR)
