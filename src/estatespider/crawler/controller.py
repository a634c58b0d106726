"""Pagination state machine

Loading(n) -> Extracting -> Filtering -> Enriching -> Deciding -> Loading(n+1) | Terminal

Pages are visited strictly in order and never revisited. A page's records
are committed to the result set only after all of its detail fetches have
finished, so a cancelled page contributes nothing.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..browser.source import PageSource
from ..common.config import RunSettings
from ..common.exceptions import ExtractionError, PageLoadError
from ..common.logger import get_logger
from ..common.types import (
    EnrichedRecord,
    EnrichmentResult,
    ListingCandidate,
    PageState,
    RunReport,
    StopReason,
)
from .dedup import Deduplicator
from .enricher import DetailEnricher
from .extractor import Extractor
from .filters import RecordFilter
from .rate_controller import AdaptiveRateController
from .retry import RetryPolicy

logger = get_logger(__name__)


def build_page_url(start_url: str, page_param: str, page_number: int) -> str:
    """Set ``page_param`` on ``start_url``, keeping every other query parameter"""
    parts = urlsplit(start_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != page_param]
    query.append((page_param, str(page_number)))
    return urlunsplit(parts._replace(query=urlencode(query)))


class CancellationToken:
    """External cancellation plus an optional wall-clock deadline"""

    def __init__(self, deadline_s: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._event = asyncio.Event()
        self._clock = clock
        self._deadline = clock() + deadline_s if deadline_s is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None and self._clock() >= self._deadline:
            self._event.set()
        return self._event.is_set()

    async def wait(self) -> None:
        """Return once cancelled or past the deadline"""
        if self._deadline is None:
            await self._event.wait()
            return
        remaining = max(0.0, self._deadline - self._clock())
        try:
            await asyncio.wait_for(self._event.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            self._event.set()


@dataclass
class CrawlResult:
    """Records in discovery order plus the run report"""

    records: List[EnrichedRecord] = field(default_factory=list)
    report: Optional[RunReport] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PaginationController:
    """Drives one crawl over ``start_url`` until a terminal condition"""

    def __init__(
        self,
        source: PageSource,
        settings: RunSettings,
        record_filter: RecordFilter,
        deduplicator: Deduplicator,
        retry: Optional[RetryPolicy] = None,
        extractor: Optional[Extractor] = None,
        enricher: Optional[DetailEnricher] = None,
        rate_controller: Optional[AdaptiveRateController] = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.source = source
        self.settings = settings
        self.record_filter = record_filter
        self.deduplicator = deduplicator
        self.rate_controller = rate_controller or AdaptiveRateController(
            base_delay=settings.page_delay_base_s,
            jitter=settings.page_delay_random_s,
            backoff_factor=settings.backoff_factor,
            max_level=settings.max_backoff_level,
            credit_recovery_pages=settings.credit_recovery_pages,
        )
        self.retry = retry or RetryPolicy(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base_s,
            jitter_ratio=settings.backoff_jitter,
            sleep=sleep,
            on_bot_detected=lambda _signature: self.rate_controller.apply_penalty(),
        )
        self.extractor = extractor or Extractor()
        self.enricher = enricher or DetailEnricher(source, concurrency=settings.detail_concurrency)
        self._sleep = sleep
        self._clock = clock

    async def run(self, token: Optional[CancellationToken] = None) -> CrawlResult:
        """Paginate until a stop condition; never raises for page-level failures

        Raises:
            BrowserUnavailableError: the rendering engine is gone (fatal)
        """
        settings = self.settings
        report = RunReport(
            mode=settings.mode,
            start_url=settings.start_url,
            threshold=self.record_filter.threshold,
            started_at=self._clock(),
        )
        records: List[EnrichedRecord] = []
        page_number = 1

        while True:
            if settings.max_pages is not None and page_number > settings.max_pages:
                report.stop_reason = StopReason.PAGE_LIMIT
                break
            if token is not None and token.cancelled:
                report.stop_reason = StopReason.CANCELLED
                break

            stop_reason = await self._visit(page_number, records, report, token)
            if stop_reason is not None:
                report.stop_reason = stop_reason
                break

            if settings.max_pages is not None and page_number >= settings.max_pages:
                report.stop_reason = StopReason.PAGE_LIMIT
                break

            page_number += 1
            await self._sleep(self.rate_controller.get_delay())

        report.records_emitted = len(records)
        report.finished_at = self._clock()
        logger.info(
            f"crawl stopped: {report.stop_reason.value} after {report.pages_visited} page(s), "
            f"{report.records_emitted} record(s)"
        )
        return CrawlResult(records=records, report=report)

    async def _visit(
        self,
        page_number: int,
        records: List[EnrichedRecord],
        report: RunReport,
        token: Optional[CancellationToken],
    ) -> Optional[StopReason]:
        """Process one page; returns a stop reason or None to continue"""
        url = build_page_url(self.settings.start_url, self.settings.page_param, page_number)
        logger.info(f"loading page {page_number}: {url}")

        try:
            document = await self.retry.navigate(self.source, url)
        except PageLoadError as e:
            logger.error(f"page {page_number} failed to load: {e}")
            report.error = str(e)
            return StopReason.PAGE_LOAD_FAILURE

        # relative listing dates are resolved against the moment the page was seen
        observed_at = self._clock()
        try:
            extraction = await self.extractor.extract(document, page_number)
        except ExtractionError as e:
            logger.error(f"page {page_number} could not be extracted: {e}")
            report.error = str(e)
            return StopReason.MALFORMED_PAGE
        finally:
            await document.close()

        self.rate_controller.record_success()
        state = PageState(page_number=page_number, raw_item_count=extraction.raw_count)
        if extraction.raw_count == 0:
            report.absorb(state)
            logger.info(f"page {page_number}: no listing elements")
            return StopReason.END_OF_RESULTS

        fresh: List[Tuple[ListingCandidate, datetime]] = []
        for candidate in extraction.candidates:
            if not self.record_filter.is_admissible(candidate):
                state.inadmissible_count += 1
                continue
            if not self.deduplicator.admit(candidate):
                state.duplicate_count += 1
                continue
            state.admitted_count += 1
            listed_at = self.record_filter.resolve_listed_at(candidate, observed_at)
            if self.record_filter.is_fresh(listed_at):
                fresh.append((candidate, listed_at))
        state.fresh_count = len(fresh)

        enrichments = await self._enrich_page([candidate for candidate, _ in fresh], token)
        report.absorb(state)
        if enrichments is None:
            logger.warning(f"page {page_number}: cancelled during enrichment, page discarded")
            return StopReason.CANCELLED

        records.extend(
            EnrichedRecord.from_candidate(candidate, listed_at, enrichment)
            for (candidate, listed_at), enrichment in zip(fresh, enrichments)
        )
        logger.info(
            f"page {page_number}: {state.raw_item_count} raw, {state.admitted_count} admitted, "
            f"{state.fresh_count} fresh, {state.inadmissible_count} below min area, "
            f"{state.duplicate_count} duplicate"
        )

        if state.admitted_count == 0 and self.settings.stop_when_no_new:
            return StopReason.NO_NEW_CONTENT
        return None

    async def _enrich_page(
        self,
        candidates: Sequence[ListingCandidate],
        token: Optional[CancellationToken],
    ) -> Optional[List[EnrichmentResult]]:
        """Enrich a page's fresh candidates; None if cancelled before completion"""
        if not candidates:
            return []
        if token is None:
            return await self.enricher.enrich_batch(candidates)

        batch = asyncio.ensure_future(self.enricher.enrich_batch(candidates))
        cancel_wait = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({batch, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_wait.cancel()
            if not batch.done():
                batch.cancel()
                with suppress(asyncio.CancelledError):
                    await batch

        if batch.cancelled():
            return None
        return batch.result()
