"""Date/time helpers.

- Wall-clock timestamps are timezone-aware UTC datetimes.
- Durations and staleness are measured on the monotonic clock, which never
  jumps when the system clock is adjusted.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime

MonotonicClock = Callable[[], float]
"""Zero-argument callable returning seconds on a monotonic clock."""


def utcnow() -> datetime:
    """Preferred replacement for `datetime.now(UTC)`.

    Returns a timezone-aware datetime in UTC.
    """
    return datetime.now(UTC)


def monotonic() -> float:
    return time.monotonic()
