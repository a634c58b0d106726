"""Admissibility and freshness filtering

``listed_raw`` text is turned into a timestamp in two passes: a relative
phrase (``"3 days ago"``) subtracted from the page's observed "now", then
absolute date parsing with ``pandas.to_datetime``. Text that parses neither
way gives ``None``, which is never fresh.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd

from ..common.constants import DEFAULT_MIN_AREA_SQFT
from ..common.types import ListingCandidate

RELATIVE_TIME_RE = re.compile(r"(\d+)\s*(minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)
LISTED_PREFIX_RE = re.compile(r"^\s*listed\b\s*(?:on\b)?\s*[:\-]?\s*", re.IGNORECASE)

_UNIT_DELTAS = {
    "minute": lambda n: timedelta(minutes=n),
    "hour": lambda n: timedelta(hours=n),
    "day": lambda n: timedelta(days=n),
    "week": lambda n: timedelta(weeks=n),
    # calendar arithmetic, day-of-month clamped (Mar 31 - 1 month = Feb 28/29)
    "month": lambda n: pd.DateOffset(months=n),
    "year": lambda n: pd.DateOffset(years=n),
}


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def parse_relative_time(text: str, now: datetime) -> Optional[datetime]:
    """``"<n> <unit>[s] ago"`` anywhere in ``text`` -> ``now`` minus that span"""
    match = RELATIVE_TIME_RE.search(text or "")
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2).lower()
    try:
        moment = pd.Timestamp(_as_utc(now)) - _UNIT_DELTAS[unit](amount)
    except (OverflowError, ValueError, pd.errors.OutOfBoundsDatetime):
        # "99999999999 days ago" has no representable date
        return None
    return _as_utc(moment.to_pydatetime())


def parse_absolute_date(text: str) -> Optional[datetime]:
    """Absolute date via ``pandas.to_datetime``; bare numbers are rejected as ambiguous"""
    text = (text or "").strip()
    if not text:
        return None
    # "2024" or "15" alone would silently become a date
    if not re.search(r"[A-Za-z]", text) and not re.search(r"\d[/\-.]\d", text):
        return None
    try:
        parsed = pd.to_datetime(text, utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return _as_utc(parsed.to_pydatetime())


def parse_listed_date(text: Optional[str], now: datetime) -> Optional[datetime]:
    """Resolve a listing-date label to an aware UTC timestamp, or None"""
    if not text:
        return None
    cleaned = LISTED_PREFIX_RE.sub("", text).strip()
    if not cleaned:
        return None

    relative = parse_relative_time(cleaned, now)
    if relative is not None:
        return relative

    lowered = cleaned.lower()
    if lowered in ("today", "just now", "new today"):
        return _as_utc(now)
    if lowered == "yesterday":
        return _as_utc(now) - timedelta(days=1)

    return parse_absolute_date(cleaned)


class RecordFilter:
    """Area admissibility plus listing-date freshness against a threshold"""

    def __init__(self, threshold: datetime, min_area_sqft: float = DEFAULT_MIN_AREA_SQFT):
        self.threshold = _as_utc(threshold)
        self.min_area_sqft = min_area_sqft

    def is_admissible(self, candidate: ListingCandidate) -> bool:
        return candidate.area is not None and candidate.area >= self.min_area_sqft

    def resolve_listed_at(self, candidate: ListingCandidate, now: datetime) -> Optional[datetime]:
        return parse_listed_date(candidate.listed_raw, now)

    def is_fresh(self, listed_at: Optional[datetime]) -> bool:
        return listed_at is not None and listed_at >= self.threshold
