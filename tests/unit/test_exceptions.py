"""Exception hierarchy tests"""

import pytest

from estatespider.common.exceptions import (
    AntiCrawlerError,
    BrowserError,
    BrowserUnavailableError,
    CheckpointError,
    ConfigError,
    ConfigValidationError,
    EstateSpiderError,
    ExtractionError,
    NavigationError,
    PageLoadError,
    SinkWriteError,
    StorageError,
)


class TestExceptionHierarchy:
    """Inheritance and attributes"""

    def test_base_exception(self):
        with pytest.raises(EstateSpiderError):
            raise EstateSpiderError("base")

    @pytest.mark.parametrize(
        "error, parent",
        [
            (BrowserUnavailableError(), BrowserError),
            (NavigationError("https://x"), BrowserError),
            (AntiCrawlerError("https://x", "text:robot check"), BrowserError),
            (PageLoadError("https://x", 3), BrowserError),
            (SinkWriteError("out.csv"), StorageError),
            (CheckpointError("lastRun.json"), StorageError),
            (ConfigValidationError("bad"), ConfigError),
            (ExtractionError("https://x"), EstateSpiderError),
        ],
    )
    def test_inheritance(self, error, parent):
        assert isinstance(error, parent)
        assert isinstance(error, EstateSpiderError)

    def test_navigation_error_attributes(self):
        error = NavigationError("https://x/list", reason="bad status", status=503)
        assert error.url == "https://x/list"
        assert error.status == 503
        assert "HTTP 503" in str(error)

    def test_page_load_error_keeps_last_error(self):
        cause = NavigationError("https://x/list", reason="navigation timeout")
        error = PageLoadError("https://x/list", 3, cause)
        assert error.attempts == 3
        assert error.last_error is cause
        assert "navigation timeout" in str(error)

    def test_anti_crawler_signature(self):
        error = AntiCrawlerError("https://x", "url:challenge")
        assert error.signature == "url:challenge"
