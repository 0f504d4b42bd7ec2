"""Timestamp utilities (epoch milliseconds, UTC)."""

import time


def now_ms() -> int:
    """Current unix time in milliseconds, as used in every response envelope."""
    return int(time.time() * 1000)


def elapsed_ms(started: float) -> float:
    """Milliseconds since a time.perf_counter() reading."""
    return (time.perf_counter() - started) * 1000
