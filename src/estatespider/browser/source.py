"""
Page source

The crawl core only depends on the ``PageSource`` / ``DocumentHandle``
protocols defined here. ``PlaywrightPageSource`` is the production
implementation on top of ``BrowserEngine``; tests substitute in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..common.constants import DEFAULT_NAV_TIMEOUT_MS
from ..common.exceptions import NavigationError
from .engine import BrowserEngine

if TYPE_CHECKING:
    from ..crawler.extractor import ExtractionSpec


# evaluated in the page: one dict per item, first matching selector wins per field
_EXTRACT_ITEMS_JS = """
(spec) => {
  const read = (node, field) => {
    if (!node) return null;
    if (field.attribute) {
      const value = field.attribute === 'href' && node.href ? node.href : node.getAttribute(field.attribute);
      return value == null ? null : String(value).trim();
    }
    const text = (node.innerText || node.textContent || '').trim();
    return text || null;
  };
  const lookup = (item, field) => {
    if (field.closest) return item.closest(field.selector);
    if (item.matches(field.selector)) return item;
    return item.querySelector(field.selector);
  };
  return Array.from(document.querySelectorAll(spec.item_selector)).map((item) => {
    const row = { _text: (item.innerText || item.textContent || '').trim() };
    for (const [name, fields] of Object.entries(spec.fields)) {
      row[name] = null;
      for (const field of fields) {
        let value = null;
        try { value = read(lookup(item, field), field); } catch (e) { value = null; }
        if (value) { row[name] = value; break; }
      }
    }
    return row;
  });
}
"""

COOKIE_CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "button[id*='accept']",
    "button[class*='accept']",
    "button:has-text('Accept all')",
    "button:has-text('Accept')",
]


@runtime_checkable
class DocumentHandle(Protocol):
    """A rendered page; must be closed exactly once"""

    url: str
    status: Optional[int]

    async def evaluate(self, spec: "ExtractionSpec") -> List[Dict[str, Any]]: ...

    async def text(self) -> str: ...

    async def matches(self, selector: str) -> bool: ...

    async def close(self) -> None: ...


@runtime_checkable
class PageSource(Protocol):
    """Navigates to URLs and hands back rendered documents"""

    async def navigate(self, url: str, options: Optional[Dict[str, Any]] = None) -> DocumentHandle: ...

    async def rotate_identity(self) -> None: ...


class PlaywrightDocument:
    """DocumentHandle backed by a Playwright page"""

    def __init__(self, page: Page, url: str, status: Optional[int]):
        self._page = page
        self.url = url
        self.status = status
        self._closed = False

    async def evaluate(self, spec: "ExtractionSpec") -> List[Dict[str, Any]]:
        """
        Wait for the item selector, then run the extraction script

        A missing item selector after ``spec.wait_timeout_ms`` means the page
        has no items, not an error.
        """
        try:
            await self._page.wait_for_selector(spec.item_selector, timeout=spec.wait_timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug(f"[Source] no '{spec.item_selector}' within {spec.wait_timeout_ms}ms: {self.url}")
            return []

        if spec.expand_selector:
            await self._expand(spec.expand_selector)

        rows = await self._page.evaluate(_EXTRACT_ITEMS_JS, spec.to_payload())
        return list(rows or [])

    async def _expand(self, selector: str) -> None:
        try:
            await self._page.click(selector, timeout=3000)
            await self._page.wait_for_timeout(500)
        except (PlaywrightTimeoutError, PlaywrightError):
            # nothing to expand
            pass

    async def text(self) -> str:
        try:
            title = await self._page.title()
            body = await self._page.inner_text("body", timeout=5000)
        except (PlaywrightTimeoutError, PlaywrightError):
            return ""
        return f"{title}\n{body}"

    async def matches(self, selector: str) -> bool:
        try:
            element = await self._page.query_selector(selector)
            return bool(element and await element.is_visible())
        except PlaywrightError:
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._page.close()
        except PlaywrightError as e:
            logger.debug(f"[Source] page close failed: {e}")


class PlaywrightPageSource:
    """PageSource that renders pages in a shared ``BrowserEngine``"""

    def __init__(
        self,
        engine: BrowserEngine,
        nav_timeout_ms: int = DEFAULT_NAV_TIMEOUT_MS,
        warmup_url: Optional[str] = None,
        debug_dir: Optional[str | Path] = None,
    ):
        self.engine = engine
        self.nav_timeout_ms = nav_timeout_ms
        self.warmup_url = warmup_url
        self.debug_dir = Path(debug_dir) if debug_dir else None
        self._warmed_up = False

    async def navigate(self, url: str, options: Optional[Dict[str, Any]] = None) -> PlaywrightDocument:
        """
        Load ``url`` and return the rendered document

        Args:
            url: page to load
            options: optional ``timeout_ms`` and ``wait_until`` overrides

        Raises:
            NavigationError: timeout, no response or a non-2xx status
            BrowserUnavailableError: the engine is not running
        """
        if self.warmup_url and not self._warmed_up:
            await self.warm_up(self.warmup_url)

        options = options or {}
        page = await self.engine.new_page()
        try:
            response = await page.goto(
                url,
                wait_until=options.get("wait_until", "domcontentloaded"),
                timeout=options.get("timeout_ms", self.nav_timeout_ms),
            )
        except PlaywrightTimeoutError as e:
            await self._fail(page, url)
            raise NavigationError(url, reason="navigation timeout") from e
        except PlaywrightError as e:
            await self._fail(page, url)
            raise NavigationError(url, reason=f"navigation error: {e.message}") from e

        if response is None:
            await self._fail(page, url)
            raise NavigationError(url, reason="no response")
        # 429 is handed back so the bot detector can react to it
        if response.status >= 400 and response.status != 429:
            await self._fail(page, url)
            raise NavigationError(url, reason="bad status", status=response.status)

        return PlaywrightDocument(page, page.url or url, response.status)

    async def rotate_identity(self) -> None:
        await self.engine.rotate_identity()
        self._warmed_up = False

    async def warm_up(self, url: str) -> None:
        """Visit the site's homepage once and dismiss the cookie banner"""
        self._warmed_up = True
        page = await self.engine.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
            for selector in COOKIE_CONSENT_SELECTORS:
                try:
                    await page.click(selector, timeout=2000)
                    logger.info(f"[Source] accepted cookie banner via {selector}")
                    break
                except (PlaywrightTimeoutError, PlaywrightError):
                    continue
        except (PlaywrightTimeoutError, PlaywrightError) as e:
            logger.warning(f"[Source] warm-up failed for {url}: {e}")
        finally:
            await page.close()

    async def _fail(self, page: Page, url: str) -> None:
        if self.debug_dir is not None:
            await self._save_debug_artifacts(page, url)
        try:
            await page.close()
        except PlaywrightError:
            pass

    async def _save_debug_artifacts(self, page: Page, url: str) -> None:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        try:
            await page.screenshot(path=str(self.debug_dir / f"nav_error_{stamp}.png"), full_page=True)
            (self.debug_dir / f"nav_error_{stamp}.html").write_text(await page.content(), encoding="utf-8")
            logger.info(f"[Source] saved debug artifacts for {url} to {self.debug_dir}")
        except (PlaywrightError, OSError) as e:
            logger.debug(f"[Source] could not save debug artifacts: {e}")
