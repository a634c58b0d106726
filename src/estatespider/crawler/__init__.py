"""Crawl core: pagination, retry, extraction, filtering, dedup, enrichment"""

from .controller import CancellationToken, CrawlResult, PaginationController, build_page_url
from .dedup import Deduplicator, identity_key
from .enricher import DetailEnricher
from .extractor import DEFAULT_DETAIL_SPEC, DEFAULT_LISTING_SPEC, ExtractionSpec, Extractor, FieldSelector
from .filters import RecordFilter, parse_listed_date, parse_relative_time
from .rate_controller import AdaptiveRateController
from .retry import RetryPolicy

__all__ = [
    "CancellationToken",
    "CrawlResult",
    "PaginationController",
    "build_page_url",
    "Deduplicator",
    "identity_key",
    "DetailEnricher",
    "DEFAULT_DETAIL_SPEC",
    "DEFAULT_LISTING_SPEC",
    "ExtractionSpec",
    "Extractor",
    "FieldSelector",
    "RecordFilter",
    "parse_listed_date",
    "parse_relative_time",
    "AdaptiveRateController",
    "RetryPolicy",
]
