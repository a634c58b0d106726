"""Declarative extraction of listing cards

An ``ExtractionSpec`` names the item selector and, per field, an ordered
list of fallback selectors. The document evaluates it and returns one raw
dict per matched element; ``Extractor`` turns those into
``ListingCandidate`` objects without dropping anything: malformed candidates
are passed through and filtered later.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, field_validator

from ..browser.source import DocumentHandle
from ..common.constants import DEFAULT_ITEM_WAIT_MS, SQFT_PER_SQM
from ..common.exceptions import ConfigValidationError, ExtractionError
from ..common.types import ListingCandidate
from .filters import RELATIVE_TIME_RE

_NUMBER = r"(\d[\d,]*(?:\.\d+)?)"
SQFT_RE = re.compile(_NUMBER + r"\s*(?:sq\.?\s*ft\.?|sqft|square\s+feet|ft²|ft2)", re.IGNORECASE)
SQM_RE = re.compile(_NUMBER + r"\s*(?:m²|m2|sq\.?\s*m\b|sqm|square\s+met(?:er|re)s?)", re.IGNORECASE)
BARE_NUMBER_RE = re.compile(r"^\s*" + _NUMBER + r"\s*$")
LISTED_PHRASE_RE = re.compile(r"\blisted\s+(?:on\s+)?([^\n|•·]+)", re.IGNORECASE)


class FieldSelector(BaseModel):
    """One way of reading a field from an item element"""

    model_config = ConfigDict(frozen=True)

    selector: str
    attribute: Optional[str] = None  # read text when None
    closest: bool = False  # match an ancestor instead of a descendant


class ExtractionSpec(BaseModel):
    """Item selector plus ordered fallback selectors per field"""

    model_config = ConfigDict(frozen=True)

    item_selector: str
    fields: Dict[str, Tuple[FieldSelector, ...]]
    wait_timeout_ms: int = DEFAULT_ITEM_WAIT_MS
    # clicked once before reading, e.g. a "read more" toggle
    expand_selector: Optional[str] = None

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, value: Dict[str, Tuple[FieldSelector, ...]]) -> Dict[str, Tuple[FieldSelector, ...]]:
        empty = [name for name, selectors in value.items() if not selectors]
        if empty:
            raise ValueError(f"fields without selectors: {', '.join(empty)}")
        return value

    def to_payload(self) -> Dict[str, Any]:
        """Plain dict handed to the in-page evaluation"""
        return {
            "item_selector": self.item_selector,
            "fields": {
                name: [selector.model_dump() for selector in selectors]
                for name, selectors in self.fields.items()
            },
        }

    @classmethod
    def from_file(cls, path: str | Path) -> "ExtractionSpec":
        """Load a spec from JSON; plain strings are accepted as text selectors

        Example file::

            {"item_selector": "article.card",
             "fields": {"title": ["h2", "h3"],
                        "url": [{"selector": "a", "attribute": "href"}]}}
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
            fields = {
                name: tuple(
                    FieldSelector(selector=item) if isinstance(item, str) else FieldSelector(**item)
                    for item in selectors
                )
                for name, selectors in data.pop("fields", {}).items()
            }
            return cls(fields=fields, **data)
        except (OSError, ValueError, TypeError) as e:
            raise ConfigValidationError(f"invalid extraction spec {path}: {e}") from e


def _selectors(*selectors: str, attribute: Optional[str] = None, closest: bool = False) -> Tuple[FieldSelector, ...]:
    return tuple(FieldSelector(selector=s, attribute=attribute, closest=closest) for s in selectors)


# broad card selectors shared by many listing sites
DEFAULT_LISTING_SPEC = ExtractionSpec(
    item_selector=", ".join([
        'li[role="listitem"]',
        "article",
        "div.PropertyCard",
        "div.ListingCard",
        "div.card",
        'div[data-cy="listing-card"]',
        'div[data-testid="listing-card"]',
        "div.property-card",
        ".property-list-item",
        '[data-testid="property-card"]',
        "div.Card",
        ".listing-item",
    ]),
    fields={
        "title": _selectors("h2", "h3", '[class*="title"]', ".property-title", '[data-testid="title"]'),
        "location": _selectors(
            '[class*="location"]',
            '[data-testid="location"]',
            ".property-location",
            ".card-location",
            '[class*="LocationLabel"]',
        ),
        "price": _selectors(
            '[class*="price"]', '[data-testid="price"]', ".property-price", ".card-price", ".PriceLabel"
        ),
        "area": _selectors('[class*="area"]', '[class*="size"]', '[data-testid="area"]', ".property-area"),
        "listed": (
            FieldSelector(selector="time[datetime]", attribute="datetime"),
            *_selectors("time", '[class*="date"]', '[data-testid="date"]', ".listing-date"),
        ),
        "url": (
            FieldSelector(selector="a[href]", attribute="href"),
            FieldSelector(selector="a[href]", attribute="href", closest=True),
        ),
    },
)

DEFAULT_DETAIL_SPEC = ExtractionSpec(
    item_selector="#description, [data-testid='description'], .property-description",
    fields={"description": _selectors("*")},
    wait_timeout_ms=15000,
    expand_selector="#description button",
)


def parse_area(text: Optional[str], assume_sqft: bool = False) -> Optional[float]:
    """Area in square feet from ``"2,000 sq ft"``, ``"1800sqft"`` or ``"185 m²"``

    Args:
        text: field or card text
        assume_sqft: treat a bare number as square feet (dedicated area fields)
    """
    if not text:
        return None
    match = SQFT_RE.search(text)
    if match:
        return _to_float(match.group(1))
    match = SQM_RE.search(text)
    if match:
        value = _to_float(match.group(1))
        return round(value * SQFT_PER_SQM, 2) if value is not None else None
    if assume_sqft:
        match = BARE_NUMBER_RE.match(text)
        if match:
            return _to_float(match.group(1))
    return None


def _to_float(raw: str) -> Optional[float]:
    try:
        return float(raw.replace(",", ""))
    except ValueError:
        return None


def find_listed_phrase(text: Optional[str]) -> Optional[str]:
    """Relative-time or ``Listed …`` phrase inside free card text"""
    if not text:
        return None
    match = RELATIVE_TIME_RE.search(text)
    if match:
        return match.group(0)
    match = LISTED_PHRASE_RE.search(text)
    if match:
        return match.group(0).strip()
    return None


@dataclass
class PageExtraction:
    """Candidates in document order plus the raw element count"""

    candidates: List[ListingCandidate] = field(default_factory=list)
    raw_count: int = 0


class Extractor:
    """Applies an ``ExtractionSpec`` to listing pages"""

    def __init__(self, spec: ExtractionSpec = DEFAULT_LISTING_SPEC):
        self.spec = spec

    async def extract(self, document: DocumentHandle, page_number: int = 1) -> PageExtraction:
        """
        Raises:
            ExtractionError: the document could not be evaluated
        """
        try:
            rows = await document.evaluate(self.spec)
        except Exception as e:
            raise ExtractionError(document.url, f"evaluation failed ({e})") from e

        if not isinstance(rows, list):
            raise ExtractionError(document.url, f"evaluation returned {type(rows).__name__}")

        candidates = [self.to_candidate(row, document.url, page_number) for row in rows]
        return PageExtraction(candidates=candidates, raw_count=len(rows))

    @staticmethod
    def to_candidate(row: Any, page_url: str, page_number: int) -> ListingCandidate:
        if not isinstance(row, dict):
            return ListingCandidate(source_page=page_number)

        item_text = str(row.get("_text") or "")
        area = parse_area(_clean(row.get("area")), assume_sqft=True)
        if area is None:
            area = parse_area(item_text)

        listed = _clean(row.get("listed")) or find_listed_phrase(item_text)

        url = _clean(row.get("url"))
        if url:
            url = urljoin(page_url, url)

        return ListingCandidate(
            title=_clean(row.get("title")),
            location=_clean(row.get("location")),
            price=_clean(row.get("price")),
            area=area,
            listed_raw=listed,
            url=url,
            source_page=page_number,
        )


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None
