"""Delay helpers shared across crawler components."""

from __future__ import annotations

import random


def exponential_backoff(
    base: float,
    attempt: int,
    jitter_ratio: float = 0.0,
    rng: random.Random | None = None,
) -> float:
    """Return ``base * 2**attempt`` spread by up to ``±jitter_ratio`` of itself."""
    delay = base * (2 ** attempt)
    if jitter_ratio:
        delay += delay * (rng or random).uniform(-jitter_ratio, jitter_ratio)
    return max(0.0, delay)
