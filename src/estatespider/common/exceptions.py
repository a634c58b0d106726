"""Custom exceptions

All errors raised by the harvester, grouped by the failure taxonomy the crawl
reacts to: transient navigation problems, page-terminal failures, storage
problems and fatal engine failures.
"""

from __future__ import annotations


class EstateSpiderError(Exception):
    """Base class for all EstateSpider errors."""
    pass


class BrowserError(EstateSpiderError):
    """Base class for page-rendering errors"""
    pass


class BrowserUnavailableError(BrowserError):
    """The rendering engine could not be started at all.

    Fatal for the whole run: the checkpoint must not be updated.
    """
    def __init__(self, message: str = "browser engine unavailable"):
        super().__init__(message)


class NavigationError(BrowserError):
    """A single navigation attempt failed (non-2xx status, timeout, no response)."""
    def __init__(self, url: str, reason: str = "navigation failed", status: int | None = None):
        detail = f"{reason}: {url}"
        if status is not None:
            detail = f"{reason} (HTTP {status}): {url}"
        super().__init__(detail)
        self.url = url
        self.reason = reason
        self.status = status


class AntiCrawlerError(BrowserError):
    """The source served a challenge or block page instead of content"""
    def __init__(self, url: str, signature: str):
        super().__init__(f"bot-detection signature '{signature}': {url}")
        self.url = url
        self.signature = signature


class PageLoadError(BrowserError):
    """A page could not be loaded after all retry attempts.

    Page-terminal: pagination stops, accumulated records are still persisted.
    """
    def __init__(self, url: str, attempts: int, last_error: Exception | None = None):
        message = f"page load failed after {attempts} attempt(s): {url}"
        if last_error is not None:
            message += f" (last error: {last_error})"
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class ExtractionError(EstateSpiderError):
    """The page loaded but its structure could not be evaluated"""
    def __init__(self, url: str, message: str = "extraction failed"):
        super().__init__(f"{message}: {url}")
        self.url = url


class StorageError(EstateSpiderError):
    """Base class for storage errors"""
    pass


class SinkWriteError(StorageError):
    """The result set could not be written to its local destination"""
    def __init__(self, path: str, message: str = "result write failed"):
        super().__init__(f"{message}: {path}")
        self.path = path


class CheckpointError(StorageError):
    """The run checkpoint could not be written"""
    def __init__(self, path: str, message: str = "checkpoint write failed"):
        super().__init__(f"{message}: {path}")
        self.path = path


class ConfigError(EstateSpiderError):
    """Configuration errors"""
    pass


class ConfigValidationError(ConfigError):
    """A configuration value is out of range or unknown"""
    pass
