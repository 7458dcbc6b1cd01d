"""Business clock.

All stored timestamps are naive wall-clock values in the configured business
timezone, so day boundaries (weekends, midnight reconciliation) line up with
what employees see on their own clocks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def local_now(tz_name: str = "UTC") -> datetime:
    """Current wall-clock time in ``tz_name`` without tzinfo."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def make_clock(tz_name: str) -> Clock:
    """Return a zero-argument clock bound to a timezone."""

    def _now() -> datetime:
        return local_now(tz_name)

    return _now
