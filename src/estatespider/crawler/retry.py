"""Retry policy around page navigation

Classifies navigation outcomes and decides whether and when to try again:

- ``NavigationError`` (non-2xx, timeout, no response): retry after backoff
- bot-detection signature in the returned document: close it, rotate the
  browsing identity, retry after backoff
- ``BrowserUnavailableError``: fatal, re-raised immediately
- anything else: retry, then give up like any other exhausted page

Exhaustion raises ``PageLoadError`` carrying the last underlying error.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from ..browser.detection import BotDetector
from ..browser.source import DocumentHandle, PageSource
from ..common.constants import (
    DEFAULT_BACKOFF_BASE_S,
    DEFAULT_BACKOFF_JITTER,
    DEFAULT_MAX_ATTEMPTS,
    MAX_BACKOFF_JITTER,
)
from ..common.exceptions import (
    AntiCrawlerError,
    BrowserUnavailableError,
    NavigationError,
    PageLoadError,
)
from ..common.logger import get_logger
from ..common.utils.delay import exponential_backoff

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """Bounded retries with exponential backoff and identity rotation"""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BACKOFF_BASE_S,
        jitter_ratio: float = DEFAULT_BACKOFF_JITTER,
        detector: Optional[BotDetector] = None,
        sleep: SleepFn = asyncio.sleep,
        rng: Optional[random.Random] = None,
        on_bot_detected: Optional[Callable[[str], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.jitter_ratio = min(max(jitter_ratio, 0.0), MAX_BACKOFF_JITTER)
        self.detector = detector
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._on_bot_detected = on_bot_detected

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index + 1`` (0-based)"""
        return exponential_backoff(self.base_delay, retry_index, self.jitter_ratio, self._rng)

    async def navigate(
        self,
        source: PageSource,
        url: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> DocumentHandle:
        """
        Load ``url`` through ``source`` with retries

        Returns:
            a document that passed bot detection; the caller owns and closes it

        Raises:
            PageLoadError: all attempts failed
            BrowserUnavailableError: the rendering engine is gone
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.backoff_delay(attempt - 2)
                logger.info(f"retrying {url} in {delay:.2f}s (attempt {attempt}/{self.max_attempts})")
                await self._sleep(delay)

            try:
                document = await source.navigate(url, options)
            except BrowserUnavailableError:
                raise
            except NavigationError as e:
                last_error = e
                logger.warning(f"attempt {attempt}/{self.max_attempts} failed: {e}")
                continue
            except Exception as e:
                last_error = e
                logger.warning(f"attempt {attempt}/{self.max_attempts} unexpected error: {e!r}")
                continue

            try:
                signature = await self._inspect(document)
            except Exception as e:
                await document.close()
                last_error = e
                logger.warning(f"attempt {attempt}/{self.max_attempts}: inspection failed: {e!r}")
                continue
            if signature is None:
                return document

            await document.close()
            last_error = AntiCrawlerError(url, signature)
            logger.warning(f"attempt {attempt}/{self.max_attempts}: bot detection ({signature})")
            if self._on_bot_detected is not None:
                self._on_bot_detected(signature)
            if attempt < self.max_attempts:
                try:
                    await source.rotate_identity()
                except BrowserUnavailableError:
                    raise
                except Exception as e:
                    last_error = e
                    logger.warning(f"attempt {attempt}/{self.max_attempts}: identity rotation failed: {e!r}")

        raise PageLoadError(url, self.max_attempts, last_error)

    async def _inspect(self, document: DocumentHandle) -> Optional[str]:
        if self.detector is None:
            return None
        return await self.detector.inspect(document)
