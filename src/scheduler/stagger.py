"""
Stagger - spread a batch of monitors across a time window.

Prevents every eligible monitor for a source from hitting the same external
API in the same second when a dispatcher run starts. Monitor i of n waits
floor(i * window / n), plus a small additive jitter so neighbours never
collide exactly.
"""

import random
from datetime import timedelta
from typing import Optional

from ..config.sources import get_stagger_window


def calculate_stagger_delay(index: int, total: int, window: timedelta) -> timedelta:
    """Deterministic delay for position `index` (0-based) of `total`.

    Millisecond resolution. Always < window, non-decreasing in index.
    """
    if total <= 1:
        return timedelta(0)
    window_ms = int(window.total_seconds() * 1000)
    return timedelta(milliseconds=(index * window_ms) // total)


def add_jitter(
    delay: timedelta,
    jitter_percent: float = 10.0,
    rng: Optional[random.Random] = None,
) -> timedelta:
    """Add uniform jitter in [0, delay * jitter_percent / 100).

    Jitter is strictly additive, so the result is never below the base delay.
    """
    rng = rng or random
    delay_ms = int(delay.total_seconds() * 1000)
    max_jitter = delay_ms * (jitter_percent / 100)
    return timedelta(milliseconds=int(delay_ms + rng.random() * max_jitter))


def stagger_delay_for(
    index: int,
    total: int,
    source: str,
    jitter_percent: float = 10.0,
    rng: Optional[random.Random] = None,
) -> timedelta:
    """Jittered delay for a monitor using the source's configured window."""
    base = calculate_stagger_delay(index, total, get_stagger_window(source))
    return add_jitter(base, jitter_percent, rng)


def format_stagger_duration(delay: timedelta) -> str:
    """Compact duration for logs: "0s", "45s", "2m", "2m30s"."""
    seconds = int(delay.total_seconds())
    if seconds < 60:
        return f"{seconds}s"
    minutes, remaining = divmod(seconds, 60)
    if remaining == 0:
        return f"{minutes}m"
    return f"{minutes}m{remaining}s"
