"""Shared pytest fixtures

In-memory stand-ins for the page source so the crawl core can be exercised
without a browser.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest

from estatespider.common.config import RunSettings
from estatespider.common.types import RunMode
from estatespider.crawler.controller import build_page_url


START_URL = "https://listings.example.com/search?type=land&sort=newest"
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Fake documents and sources
# ============================================================================


class FakeDocument:
    """DocumentHandle backed by canned rows"""

    def __init__(
        self,
        url: str,
        rows: Optional[List[Dict[str, Any]]] = None,
        text: str = "",
        status: int = 200,
        evaluate_error: Optional[Exception] = None,
        visible_selectors: Sequence[str] = (),
    ):
        self.url = url
        self.status = status
        self.rows = rows or []
        self._text = text
        self.evaluate_error = evaluate_error
        self.visible_selectors = set(visible_selectors)
        self.close_count = 0

    async def evaluate(self, spec) -> List[Dict[str, Any]]:
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return list(self.rows)

    async def text(self) -> str:
        return self._text

    async def matches(self, selector: str) -> bool:
        return selector in self.visible_selectors

    async def close(self) -> None:
        self.close_count += 1

    @property
    def closed(self) -> bool:
        return self.close_count > 0


Response = Union[FakeDocument, BaseException]


class FakePageSource:
    """PageSource answering from a per-URL script of responses

    Each navigation to a URL consumes the next scripted response; the last
    one repeats. Unknown URLs raise ``KeyError`` so stray requests fail loudly.
    """

    def __init__(self, script: Optional[Dict[str, Union[Response, List[Response]]]] = None):
        self.script: Dict[str, List[Response]] = {}
        for url, responses in (script or {}).items():
            self.add(url, responses)
        self.calls: List[str] = []
        self.rotations = 0
        self.documents: List[FakeDocument] = []

    def add(self, url: str, responses: Union[Response, List[Response]]) -> None:
        self.script[url] = list(responses) if isinstance(responses, list) else [responses]

    async def navigate(self, url: str, options: Optional[Dict[str, Any]] = None) -> FakeDocument:
        self.calls.append(url)
        queue = self.script[url]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        self.documents.append(response)
        return response

    async def rotate_identity(self) -> None:
        self.rotations += 1


class RecordingSleep:
    """Async sleep replacement that only records the requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ============================================================================
# Helpers
# ============================================================================


def page_url(page_number: int, start_url: str = START_URL) -> str:
    return build_page_url(start_url, "page", page_number)


def listing_row(
    slug: str,
    area: str = "2,000 sq ft",
    listed: Optional[str] = "5 hours ago",
    url: Optional[str] = "auto",
    **extra: Any,
) -> Dict[str, Any]:
    """Raw row as the in-page evaluation would return it"""
    row = {
        "title": f"Plot {slug}",
        "location": "Springfield",
        "price": "$120,000",
        "area": area,
        "listed": listed,
        "url": f"/listing/{slug}" if url == "auto" else url,
        "_text": f"Plot {slug} {area} {listed or ''}",
    }
    row.update(extra)
    return row


def detail_document(url: str, description: str = "Level plot with road access") -> FakeDocument:
    return FakeDocument(url, rows=[{"description": description}])


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_source() -> FakePageSource:
    return FakePageSource()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def update_settings() -> RunSettings:
    return RunSettings(
        mode=RunMode.UPDATE,
        start_url=START_URL,
        max_pages=3,
        page_delay_base_s=0.0,
        page_delay_random_s=0.0,
        backoff_base_s=0.01,
    )


@pytest.fixture
def initial_settings() -> RunSettings:
    return RunSettings(
        mode=RunMode.INITIAL,
        start_url=START_URL,
        max_pages=15,
        page_delay_base_s=0.0,
        page_delay_random_s=0.0,
        backoff_base_s=0.01,
    )
