"""
Async browser engine

Owns the Playwright driver, one browser process and the current browsing
identity (a context with its own user agent, viewport and cookie jar).
Rotating the identity swaps the context; the browser process stays up.
"""

from __future__ import annotations

import asyncio
import itertools
import random
from typing import Any, Dict, List, Literal, Optional, Sequence

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright_stealth import Stealth

from ..common.constants import BLOCKED_RESOURCE_TYPES
from ..common.exceptions import BrowserUnavailableError


USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
]

VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1680, "height": 1050},
    {"width": 1440, "height": 900},
    {"width": 1366, "height": 768},
]


class BrowserEngine:
    """
    Async browser engine:
    1. launches a single stealth-patched browser (with launch retries)
    2. keeps one context as the active identity
    3. rotates to a fresh context with a different fingerprint on demand
    """

    def __init__(
        self,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agents: Optional[Sequence[str]] = None,
        launch_args: Optional[List[str]] = None,
        browser_type: Literal["chromium", "firefox", "webkit"] = "chromium",
        executable_path: Optional[str] = None,
        block_resources: bool = True,
        max_launch_retries: int = 2,
        default_timeout: int = 30000,
    ):
        self._playwright: Optional[Playwright] = None
        self._stealth_context: Optional[Any] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

        self.headless = headless
        self.browser_type = browser_type
        self.executable_path = executable_path
        self.block_resources = block_resources
        self.max_launch_retries = max_launch_retries
        self.default_timeout = default_timeout

        # first identity uses the configured viewport, rotations cycle the pools
        agents = list(user_agents or USER_AGENTS)
        random.shuffle(agents)
        self._user_agents = itertools.cycle(agents)
        self._viewports = itertools.cycle([viewport] if viewport else VIEWPORTS)
        self.identity_count = 0

        self.launch_args = launch_args or [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-blink-features=AutomationControlled",
            "--disable-infobars",
            "--disable-extensions",
            "--no-first-run",
        ]

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def start(self) -> None:
        """
        Launch the browser and open the first identity

        Raises:
            BrowserUnavailableError: the driver or browser could not be started
        """
        async with self._lock:
            if self.is_running:
                return

            try:
                if not self._playwright:
                    self._stealth_context = Stealth().use_async(async_playwright())
                    self._playwright = await self._stealth_context.__aenter__()
            except Exception as e:
                raise BrowserUnavailableError(f"playwright driver failed to start: {e}") from e

            launcher = getattr(self._playwright, self.browser_type)
            last_error: Optional[Exception] = None
            for attempt in range(self.max_launch_retries + 1):
                try:
                    self._browser = await launcher.launch(
                        headless=self.headless,
                        args=self.launch_args,
                        executable_path=self.executable_path,
                    )
                    break
                except Exception as e:
                    last_error = e
                    logger.warning(f"[Engine] browser launch attempt {attempt + 1} failed: {e}")
            else:
                await self._shutdown_driver()
                raise BrowserUnavailableError(f"browser failed to launch: {last_error}") from last_error

            self._context = await self._new_context()

    async def new_page(self) -> Page:
        """Open a page in the active identity"""
        if not self.is_running or self._context is None:
            raise BrowserUnavailableError("browser engine is not running")
        page = await self._context.new_page()
        page.set_default_timeout(self.default_timeout)
        return page

    async def rotate_identity(self) -> None:
        """Replace the active context with one using a different fingerprint"""
        async with self._lock:
            if not self.is_running:
                raise BrowserUnavailableError("browser engine is not running")
            old_context = self._context
            self._context = await self._new_context()
            if old_context is not None:
                await old_context.close()
            logger.info(f"[Engine] rotated browsing identity (#{self.identity_count})")

    async def _new_context(self) -> BrowserContext:
        options = {
            "viewport": next(self._viewports),
            "user_agent": next(self._user_agents),
            "ignore_https_errors": True,
            "locale": "en-US",
        }
        context = await self._browser.new_context(**options)
        if self.block_resources:
            await context.route("**/*", self._block_heavy_resources)
        self.identity_count += 1
        logger.debug(f"[Engine] new context: {options['user_agent']}")
        return context

    @staticmethod
    async def _block_heavy_resources(route: Route) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    async def close(self) -> None:
        """Shut down context, browser and driver"""
        async with self._lock:
            if self._context is not None:
                try:
                    await self._context.close()
                except Exception as e:
                    logger.debug(f"[Engine] context close failed: {e}")
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.debug(f"[Engine] browser close failed: {e}")
            self._context = None
            self._browser = None
            await self._shutdown_driver()

    async def _shutdown_driver(self) -> None:
        if self._stealth_context is not None:
            await self._stealth_context.__aexit__(None, None, None)
        self._stealth_context = None
        self._playwright = None

    async def __aenter__(self) -> "BrowserEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
