"""Browser access: engine, page source and bot detection"""

from .detection import BotDetector
from .engine import BrowserEngine
from .source import DocumentHandle, PageSource, PlaywrightPageSource

__all__ = [
    "BotDetector",
    "BrowserEngine",
    "DocumentHandle",
    "PageSource",
    "PlaywrightPageSource",
]
