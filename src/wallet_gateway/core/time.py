# src/wallet_gateway/core/time.py
"""Clock helpers shared by stores and services."""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], float]


def system_clock() -> float:
    """Return wall-clock seconds since the epoch."""
    return time.time()


def to_ms(seconds: float) -> int:
    """Convert a clock reading to integer milliseconds."""
    return round(seconds * 1000)
