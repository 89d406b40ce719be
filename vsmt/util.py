"""Small numeric helpers shared by the monitoring code."""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence

_BYTES_PER_MB = 1024 * 1024


def get_error_str() -> str:
    """Describe the OS error currently being handled, or the 'no error' text."""
    exc = sys.exc_info()[1]
    if isinstance(exc, OSError) and exc.errno is not None:
        return os.strerror(exc.errno)
    return os.strerror(0)


def average(values: Sequence[float]) -> float:
    """Arithmetic mean of ``values``; 0.0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def normalize_float(value: float) -> float:
    """Truncate ``value`` toward zero to a whole number.

    The value is first cut to hundredths and then divided with integer
    division, so every fractional part is dropped.
    """
    hundredths = int(value * 100)
    whole = abs(hundredths) // 100
    return float(whole if hundredths >= 0 else -whole)


def percent_of(nom: float, denom: float) -> float:
    """Whole-number percentage of ``nom`` in ``denom``; 0.0 when ``denom`` is 0."""
    if denom == 0:
        return 0.0
    return normalize_float((nom / denom) * 100)


def byte_to_mb(num_bytes: int) -> int:
    """Whole mebibytes contained in ``num_bytes``."""
    return num_bytes // _BYTES_PER_MB