"""
Bot-detection signatures

Recognizes challenge and block pages served in place of real content:
Cloudflare / hCaptcha / reCAPTCHA walls, "verify you are human" pages and
rate-limit notices.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .source import DocumentHandle


CHALLENGE_SELECTORS = [
    "iframe[src*='recaptcha']",
    "iframe[src*='hcaptcha']",
    "iframe[src*='challenges.cloudflare.com']",
    "[id*='cf-challenge']",
    "[class*='cf-challenge']",
    "[class*='challenge-form']",
    "#px-captcha",
]

CHALLENGE_KEYWORDS = [
    "checking your browser",
    "verify you are human",
    "are you human",
    "are you a robot",
    "robot check",
    "press & hold",
    "access denied",
    "unusual traffic",
    "too many requests",
    "rate limit exceeded",
]

CHALLENGE_URL_TOKENS = ("challenge", "cf-challenge", "captcha", "/blocked")


class BotDetector:
    """Inspects a rendered document for anti-bot signatures"""

    def __init__(
        self,
        keywords: Sequence[str] = CHALLENGE_KEYWORDS,
        selectors: Sequence[str] = CHALLENGE_SELECTORS,
        url_tokens: Sequence[str] = CHALLENGE_URL_TOKENS,
        text_sample: int = 4000,
    ):
        self.keywords = [k.lower() for k in keywords]
        self.selectors = list(selectors)
        self.url_tokens = tuple(url_tokens)
        self.text_sample = text_sample

    async def inspect(self, document: DocumentHandle) -> Optional[str]:
        """
        Returns:
            the matched signature, or None for a normal page
        """
        if document.status == 429:
            return "http-429"

        url_lower = (document.url or "").lower()
        for token in self.url_tokens:
            if token in url_lower:
                return f"url:{token}"

        text = (await document.text())[: self.text_sample].lower()
        for keyword in self.keywords:
            if keyword in text:
                return f"text:{keyword}"

        for selector in self.selectors:
            if await document.matches(selector):
                return f"selector:{selector}"

        return None
