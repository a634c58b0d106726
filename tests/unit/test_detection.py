"""BotDetector tests"""

import pytest

from conftest import FakeDocument
from estatespider.browser.detection import BotDetector

URL = "https://listings.example.com/search?page=1"


class TestBotDetector:
    """Signature matching"""

    @pytest.mark.asyncio
    async def test_normal_page(self):
        document = FakeDocument(URL, text="Land for sale\n24 results\nThis site is protected by reCAPTCHA")
        assert await BotDetector().inspect(document) is None

    @pytest.mark.asyncio
    async def test_keyword(self):
        document = FakeDocument(URL, text="Checking your browser before accessing")
        assert await BotDetector().inspect(document) == "text:checking your browser"

    @pytest.mark.asyncio
    async def test_challenge_url(self):
        document = FakeDocument("https://listings.example.com/cdn-cgi/challenge-platform/h/b")
        assert await BotDetector().inspect(document) == "url:challenge"

    @pytest.mark.asyncio
    async def test_rate_limit_status(self):
        assert await BotDetector().inspect(FakeDocument(URL, status=429)) == "http-429"

    @pytest.mark.asyncio
    async def test_selector(self):
        document = FakeDocument(URL, visible_selectors=["iframe[src*='hcaptcha']"])
        assert await BotDetector().inspect(document) == "selector:iframe[src*='hcaptcha']"

    @pytest.mark.asyncio
    async def test_custom_keywords(self):
        detector = BotDetector(keywords=["Pardon Our Interruption"])
        document = FakeDocument(URL, text="pardon our interruption")
        assert await detector.inspect(document) == "text:pardon our interruption"
