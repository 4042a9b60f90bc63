from __future__ import annotations

from collections.abc import Callable

BackoffStrategy = Callable[[int], float]

MAX_BACKOFF_S = 64.0


def exponential_backoff(error_count: int) -> float:
    """Seconds to wait after ``error_count`` consecutive failures (0-based)."""
    return min(2.0 ** max(error_count, 0), MAX_BACKOFF_S)
