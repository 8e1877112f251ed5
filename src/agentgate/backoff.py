"""Exponential backoff shared by health polling and request retries."""

import random


def next_interval(attempt: int, base: float, maximum: float) -> float:
    """
    Calculate an exponential backoff interval.

    Computes ``min(base * 2**attempt, maximum)``. The function is unit
    agnostic: pass milliseconds or seconds, but use the same unit for
    ``base`` and ``maximum``.

    Args:
        attempt: Attempt or consecutive failure number (negative treated as 0)
        base: Interval for attempt 0
        maximum: Ceiling for the returned interval

    Returns:
        Interval in the same unit as ``base``
    """
    attempt = max(0, attempt)
    # Avoid float overflow on very long failure streaks
    if attempt >= 64:
        return float(maximum)
    return float(min(base * (2**attempt), maximum))


def with_jitter(
    interval: float,
    ratio: float = 0.1,
    rng: random.Random | None = None,
) -> float:
    """Spread an interval by up to ``ratio`` in either direction."""
    if ratio <= 0:
        return interval
    rng = rng or random
    spread = interval * ratio
    return max(0.0, interval + rng.uniform(-spread, spread))
