"""Deduplicator tests"""

from estatespider.common.types import ListingCandidate
from estatespider.crawler.dedup import Deduplicator, format_area, identity_key


class TestIdentityKey:
    """Identity key derivation"""

    def test_url_is_primary_identity(self):
        a = ListingCandidate(title="A", url="https://x/listing/1", area=2000)
        b = ListingCandidate(title="B", url="https://x/listing/1", area=3000)
        assert identity_key(a) == identity_key(b) == "https://x/listing/1"

    def test_composite_key_without_url(self):
        candidate = ListingCandidate(
            title="Plot", location="Springfield", area=2000, price="$1", listed_raw="2 days ago"
        )
        assert identity_key(candidate) == "Plot|Springfield|2000|$1|2 days ago"

    def test_missing_fields_stay_positional(self):
        assert identity_key(ListingCandidate(title="Plot")) == "Plot||||"

    def test_area_formatting_is_stable(self):
        assert format_area(2000) == format_area(2000.0) == "2000"
        assert format_area(1991.34) == "1991.34"
        assert format_area(None) == ""


class TestDeduplicator:
    """admit() semantics"""

    def test_admit_is_idempotent(self):
        dedup = Deduplicator()
        candidate = ListingCandidate(url="https://x/1")
        assert dedup.admit(candidate) is True
        assert dedup.admit(candidate) is False
        assert dedup.admit(candidate) is False
        assert len(dedup) == 1

    def test_rejection_has_no_side_effect(self):
        dedup = Deduplicator()
        dedup.admit(ListingCandidate(url="https://x/1"))
        dedup.admit(ListingCandidate(url="https://x/1"))
        assert len(dedup) == 1
        assert dedup.admit(ListingCandidate(url="https://x/2"))

    def test_seeded_keys_are_rejected(self):
        dedup = Deduplicator(seed=["https://x/1", ""])
        assert len(dedup) == 1
        assert not dedup.admit(ListingCandidate(url="https://x/1"))
        assert dedup.admit(ListingCandidate(url="https://x/2"))

    def test_seed_reports_new_keys(self):
        dedup = Deduplicator(seed=["a"])
        assert dedup.seed(["a", "b", "c"]) == 2

