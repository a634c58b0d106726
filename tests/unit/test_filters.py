"""RecordFilter and listing-date parsing tests"""

from datetime import datetime, timedelta, timezone

import pytest

from estatespider.common.types import ListingCandidate
from estatespider.crawler.filters import (
    RecordFilter,
    parse_absolute_date,
    parse_listed_date,
    parse_relative_time,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestRelativeTime:
    """'<n> <unit> ago' parsing"""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("3 days ago", NOW - timedelta(days=3)),
            ("5 hours ago", NOW - timedelta(hours=5)),
            ("1 minute ago", NOW - timedelta(minutes=1)),
            ("2 weeks ago", NOW - timedelta(weeks=2)),
            ("2 months ago", datetime(2024, 4, 15, 12, 0, tzinfo=timezone.utc)),
            ("1 year ago", datetime(2023, 6, 15, 12, 0, tzinfo=timezone.utc)),
            ("Listed 10 Days Ago", NOW - timedelta(days=10)),
        ],
    )
    def test_units(self, text, expected):
        assert parse_relative_time(text, NOW) == expected

    def test_month_subtraction_clamps_day(self):
        """Mar 31 minus one month is the last day of February"""
        now = datetime(2024, 3, 31, 8, 0, tzinfo=timezone.utc)
        assert parse_relative_time("1 month ago", now) == datetime(2024, 2, 29, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", ["99999999999 days ago", "99999999999 minutes ago", "999999 years ago", "9999999 months ago"])
    def test_unrepresentable_span_gives_none(self, text):
        assert parse_relative_time(text, NOW) is None
        assert parse_listed_date(text, NOW) is None

    def test_no_match(self):
        assert parse_relative_time("recently", NOW) is None
        assert parse_relative_time("", NOW) is None

    def test_naive_now_treated_as_utc(self):
        naive = NOW.replace(tzinfo=None)
        assert parse_relative_time("3 days ago", naive) == NOW - timedelta(days=3)


class TestListedDate:
    """Full listed-text resolution"""

    def test_listed_prefix_is_stripped(self):
        assert parse_listed_date("Listed 3 days ago", NOW) == NOW - timedelta(days=3)
        assert parse_listed_date("Listed on 12 March 2024", NOW) == datetime(2024, 3, 12, tzinfo=timezone.utc)

    def test_absolute_iso_date(self):
        assert parse_listed_date("2024-05-01", NOW) == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_absolute_date_with_offset_is_normalised(self):
        parsed = parse_listed_date("2024-05-01T10:00:00+02:00", NOW)
        assert parsed == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def test_today_and_yesterday(self):
        assert parse_listed_date("today", NOW) == NOW
        assert parse_listed_date("Listed yesterday", NOW) == NOW - timedelta(days=1)

    @pytest.mark.parametrize("text", [None, "", "Listed", "coming soon", "2024", "15", "Price reduced"])
    def test_unparseable_returns_none(self, text):
        assert parse_listed_date(text, NOW) is None

    def test_bare_numbers_rejected_by_absolute_parser(self):
        assert parse_absolute_date("2024") is None
        assert parse_absolute_date("15") is None


class TestRecordFilter:
    """Admissibility and freshness"""

    def setup_method(self):
        self.record_filter = RecordFilter(threshold=NOW - timedelta(days=7), min_area_sqft=1500)

    def test_small_area_is_inadmissible(self):
        assert not self.record_filter.is_admissible(ListingCandidate(area=1200))

    def test_missing_area_is_inadmissible(self):
        assert not self.record_filter.is_admissible(ListingCandidate(area=None))

    def test_area_at_minimum_is_admissible(self):
        assert self.record_filter.is_admissible(ListingCandidate(area=1500))

    def test_recent_large_listing_is_admitted_and_fresh(self):
        candidate = ListingCandidate(area=2000, listed_raw="5 hours ago", url="https://x/1")
        assert self.record_filter.is_admissible(candidate)
        listed_at = self.record_filter.resolve_listed_at(candidate, NOW)
        assert listed_at == NOW - timedelta(hours=5)
        assert self.record_filter.is_fresh(listed_at)

    def test_threshold_boundary_is_fresh(self):
        assert self.record_filter.is_fresh(NOW - timedelta(days=7))
        assert not self.record_filter.is_fresh(NOW - timedelta(days=7, seconds=1))

    def test_unknown_date_is_never_fresh(self):
        assert not self.record_filter.is_fresh(None)
        candidate = ListingCandidate(area=2000, listed_raw="ask agent")
        assert self.record_filter.resolve_listed_at(candidate, NOW) is None

    def test_later_threshold_never_admits_more(self):
        listed = [NOW - timedelta(days=d) for d in (0, 2, 5, 9, 20)]
        early = RecordFilter(NOW - timedelta(days=10))
        late = RecordFilter(NOW - timedelta(days=3))
        assert {t for t in listed if late.is_fresh(t)} <= {t for t in listed if early.is_fresh(t)}
