"""
Repetition interval vocabulary.

An item that is completed perfectly is pushed forward by its interval
(in slots). Intervals only ever step along the fixed sequence below and
stop at the ceiling.
"""

from __future__ import annotations

import math
from bisect import bisect_right

from loguru import logger

from tubecycler.errors import CorruptIntervalWarning

REPETITION_INTERVALS: tuple[int, ...] = (1, 3, 5, 10, 25, 100)
MIN_INTERVAL = REPETITION_INTERVALS[0]
MAX_INTERVAL = REPETITION_INTERVALS[-1]


def is_valid_interval(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in REPETITION_INTERVALS


def normalize_interval(value: object) -> int:
    """
    Coerce an interval from external input onto the vocabulary.

    Members pass through untouched, as do numeric strings naming a member
    ("3"). Anything else snaps to the nearest lower member (values below 1,
    non-numeric and non-finite values become 1) and a CorruptIntervalWarning
    is logged rather than raised.
    """
    if is_valid_interval(value):
        return value  # type: ignore[return-value]

    if isinstance(value, str) and value.strip().isdigit():
        coerced = int(value.strip())
        if coerced in REPETITION_INTERVALS:
            return coerced

    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        numeric = float(MIN_INTERVAL)
    if not math.isfinite(numeric):
        numeric = float(MIN_INTERVAL)

    index = bisect_right(REPETITION_INTERVALS, numeric) - 1
    normalized = REPETITION_INTERVALS[max(index, 0)]

    warning = CorruptIntervalWarning(value, normalized)
    logger.warning("{}", warning)
    return normalized


def next_interval(current: int) -> int:
    """Advance one step along the vocabulary; the ceiling stays at 100."""
    current = normalize_interval(current)
    position = REPETITION_INTERVALS.index(current)
    return REPETITION_INTERVALS[min(position + 1, len(REPETITION_INTERVALS) - 1)]
