"""Detail-page enrichment

One secondary fetch per admitted, fresh candidate. No retries: a failed
fetch degrades the record to the ``"failed to load"`` description instead
of aborting the page.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

from ..browser.source import DocumentHandle, PageSource
from ..common.constants import DEFAULT_DETAIL_CONCURRENCY
from ..common.exceptions import BrowserUnavailableError
from ..common.logger import get_logger
from ..common.types import EnrichmentResult, EnrichmentStatus, ListingCandidate
from .extractor import DEFAULT_DETAIL_SPEC, ExtractionSpec

logger = get_logger(__name__)


class DetailEnricher:
    """Fetches detail pages with bounded concurrency"""

    def __init__(
        self,
        source: PageSource,
        spec: ExtractionSpec = DEFAULT_DETAIL_SPEC,
        concurrency: int = DEFAULT_DETAIL_CONCURRENCY,
    ):
        self.source = source
        self.spec = spec
        self.concurrency = max(1, concurrency)

    async def enrich(self, candidate: ListingCandidate) -> EnrichmentResult:
        """Single attempt; the secondary document is closed on every path"""
        if not candidate.url:
            return EnrichmentResult.skipped()

        document: Optional[DocumentHandle] = None
        try:
            document = await self.source.navigate(candidate.url)
            rows = await document.evaluate(self.spec)
        except BrowserUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"detail fetch failed for {candidate.url}: {e}")
            return EnrichmentResult.failed(str(e))
        finally:
            if document is not None:
                await document.close()

        description = next(
            (row.get("description") for row in rows if isinstance(row, dict) and row.get("description")),
            None,
        )
        if not description:
            return EnrichmentResult(status=EnrichmentStatus.DEGRADED)
        return EnrichmentResult(status=EnrichmentStatus.SUCCESS, description=str(description).strip())

    async def enrich_batch(self, candidates: Sequence[ListingCandidate]) -> List[EnrichmentResult]:
        """Enrich concurrently; results come back in input order"""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(candidate: ListingCandidate) -> EnrichmentResult:
            async with semaphore:
                return await self.enrich(candidate)

        tasks = [asyncio.ensure_future(_bounded(c)) for c in candidates]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception:
            # a fatal fetch leaves no one waiting on the siblings
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
