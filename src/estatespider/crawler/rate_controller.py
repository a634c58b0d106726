"""Adaptive pacing between listing pages

Slows down after bot detections and earns speed back after a run of clean pages.
"""

from __future__ import annotations

import random

from ..common.logger import get_logger

logger = get_logger(__name__)


class AdaptiveRateController:
    """Adaptive inter-page delay

    delay = base_delay * (backoff_factor ^ level) + uniform(0, jitter)
    """

    def __init__(
        self,
        base_delay: float = 2.0,
        jitter: float = 1.0,
        backoff_factor: float = 1.5,
        max_level: int = 3,
        credit_recovery_pages: int = 5,
        rng: random.Random | None = None,
    ):
        """
        Args:
            base_delay: delay in seconds at level 0
            jitter: upper bound of the random addition in seconds
            backoff_factor: multiplier per level
            max_level: highest slow-down level
            credit_recovery_pages: clean pages needed to drop one level
            rng: random source, injectable for tests
        """
        self.base_delay = base_delay
        self.jitter = jitter
        self.backoff_factor = backoff_factor
        self.max_level = max_level
        self.credit_recovery_pages = credit_recovery_pages
        self._rng = rng or random.Random()

        self.current_level = 0
        self.consecutive_success_count = 0

    def get_delay(self) -> float:
        """Delay before the next listing page, in seconds"""
        delay = self.base_delay * (self.backoff_factor ** self.current_level)
        if self.jitter > 0:
            delay += self._rng.uniform(0, self.jitter)
        return delay

    def apply_penalty(self) -> None:
        """Raise one level (called on bot detection) and reset the success streak"""
        if self.current_level < self.max_level:
            self.current_level += 1
            logger.warning(f"pacing level raised to {self.current_level}/{self.max_level}")
        else:
            logger.warning(f"pacing already at max level {self.max_level}")
        self.consecutive_success_count = 0

    def record_success(self) -> None:
        """Count a clean page; recovers one level every ``credit_recovery_pages``"""
        self.consecutive_success_count += 1
        if self.consecutive_success_count >= self.credit_recovery_pages:
            if self.current_level > 0:
                self.current_level -= 1
                logger.info(f"pacing level recovered to {self.current_level}/{self.max_level}")
            self.consecutive_success_count = 0
