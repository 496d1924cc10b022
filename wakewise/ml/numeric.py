"""Small numeric helpers shared by the analyzer, predictor and feedback loop."""

from __future__ import annotations

import math
from datetime import datetime

from wakewise.config import DAY_ROLLOVER_HOUR


def round_half_up(value: float) -> int:
    """Round .5 upward (2.5 → 3, -2.5 → -2) instead of Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def round_to_tenth(value: float) -> float:
    return round_half_up(value * 10) / 10


def minute_of_day(dt: datetime) -> int:
    """
    Minutes since midnight, with times before 04:00 pushed past 24:00 so a
    00:30 bedtime sorts after a 23:30 one.
    """
    minute = dt.hour * 60 + dt.minute
    if dt.hour < DAY_ROLLOVER_HOUR:
        minute += 24 * 60
    return minute


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0
