"""Run orchestrator

checkpoint -> threshold -> dedup seeding -> browser -> pagination ->
sort -> sink write -> seen-key update -> checkpoint save

The checkpoint is only written after the sink confirmed its write; a fatal
engine failure leaves it untouched.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..browser.detection import BotDetector
from ..browser.engine import BrowserEngine
from ..browser.source import PageSource, PlaywrightPageSource
from ..common.config import Config, RunSettings
from ..common.exceptions import BrowserUnavailableError
from ..common.logger import get_logger
from ..common.types import EnrichedRecord, RunReport
from ..common.utils.file_utils import ensure_directory
from ..crawler.controller import CancellationToken, CrawlResult, PaginationController
from ..crawler.dedup import Deduplicator, identity_key
from ..crawler.enricher import DetailEnricher
from ..crawler.extractor import DEFAULT_DETAIL_SPEC, DEFAULT_LISTING_SPEC, ExtractionSpec, Extractor
from ..crawler.filters import RecordFilter
from ..crawler.rate_controller import AdaptiveRateController
from ..crawler.retry import RetryPolicy
from ..storage.checkpoint import RunCheckpoint, compute_threshold
from ..storage.seen_store import RedisSeenStore
from ..storage.sink import CsvResultSink, ResultSink, S3ObjectStore

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sort_newest_first(records: List[EnrichedRecord]) -> List[EnrichedRecord]:
    """Stable sort by ``listed_at`` descending, undated records last"""
    return sorted(
        records,
        key=lambda record: (record.listed_at is not None, record.listed_at or _EPOCH),
        reverse=True,
    )


async def _seed_deduplicator(
    deduplicator: Deduplicator,
    sink: ResultSink,
    seen_store: Optional[RedisSeenStore],
) -> None:
    try:
        added = deduplicator.seed(await sink.load_identity_keys())
        logger.info(f"seeded {added} key(s) from prior results")
    except Exception as e:
        logger.warning(f"dedup seeding from prior results failed, continuing without it: {e}")

    if seen_store is not None:
        added = deduplicator.seed(await seen_store.load_keys())
        logger.info(f"seeded {added} key(s) from redis")
    logger.info(f"dedup starts with {len(deduplicator)} known key(s)")


def _build_seen_store(config: Config) -> Optional[RedisSeenStore]:
    redis_config = config.redis
    if not redis_config.enabled:
        return None
    return RedisSeenStore(
        host=redis_config.host,
        port=redis_config.port,
        password=redis_config.password,
        db=redis_config.db,
        key_prefix=redis_config.key_prefix,
    )


async def _crawl(
    settings: RunSettings,
    config: Config,
    threshold: datetime,
    deduplicator: Deduplicator,
    listing_spec: ExtractionSpec,
    detail_spec: ExtractionSpec,
    source: Optional[PageSource],
    token: Optional[CancellationToken],
    clock: Callable[[], datetime],
    sleep: Callable[[float], Awaitable[object]],
) -> CrawlResult:
    engine: Optional[BrowserEngine] = None
    try:
        if source is None:
            engine = BrowserEngine(
                headless=config.browser.headless,
                viewport={"width": config.browser.viewport_width, "height": config.browser.viewport_height},
                executable_path=config.browser.executable_path,
                block_resources=config.browser.block_resources,
            )
            await engine.start()
            source = PlaywrightPageSource(
                engine,
                nav_timeout_ms=config.browser.nav_timeout_ms,
                warmup_url=config.browser.warmup_url,
                debug_dir=Path(config.storage.output_dir) / "debug" if config.browser.debug_artifacts else None,
            )

        rate_controller = AdaptiveRateController(
            base_delay=settings.page_delay_base_s,
            jitter=settings.page_delay_random_s,
            backoff_factor=settings.backoff_factor,
            max_level=settings.max_backoff_level,
            credit_recovery_pages=settings.credit_recovery_pages,
        )
        controller = PaginationController(
            source=source,
            settings=settings,
            record_filter=RecordFilter(threshold, settings.min_area_sqft),
            deduplicator=deduplicator,
            retry=RetryPolicy(
                max_attempts=settings.max_attempts,
                base_delay=settings.backoff_base_s,
                jitter_ratio=settings.backoff_jitter,
                detector=BotDetector(),
                sleep=sleep,
                on_bot_detected=lambda _signature: rate_controller.apply_penalty(),
            ),
            extractor=Extractor(listing_spec),
            enricher=DetailEnricher(source, detail_spec, settings.detail_concurrency),
            rate_controller=rate_controller,
            sleep=sleep,
            clock=clock,
        )
        return await controller.run(token)
    finally:
        if engine is not None:
            await engine.close()


async def run_harvest(
    settings: RunSettings,
    config: Config,
    listing_spec: ExtractionSpec = DEFAULT_LISTING_SPEC,
    detail_spec: ExtractionSpec = DEFAULT_DETAIL_SPEC,
    source: Optional[PageSource] = None,
    token: Optional[CancellationToken] = None,
    clock: Callable[[], datetime] = _utc_now,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> RunReport:
    """
    Execute one harvest run

    Args:
        settings: frozen run settings
        config: environment configuration (paths, browser, redis)
        listing_spec: extraction spec for listing pages
        detail_spec: extraction spec for detail pages
        source: page source override; a Playwright source is started when None
        token: cancellation / deadline token
        clock: UTC clock
        sleep: pacing/backoff sleep, injectable for tests

    Returns:
        run report with counts, terminal reason and checkpoint status

    Raises:
        BrowserUnavailableError: no rendering session could be established
        SinkWriteError: results could not be written (checkpoint untouched)
        CheckpointError: results were written but the checkpoint was not
    """
    storage = config.storage
    output_dir = Path(storage.output_dir)
    ensure_directory(output_dir)

    object_store = S3ObjectStore(storage.s3_bucket, storage.s3_prefix) if storage.s3_bucket else None
    checkpoint = RunCheckpoint(output_dir / storage.checkpoint_file)
    if object_store is not None and not checkpoint.exists():
        await object_store.download(storage.checkpoint_file, checkpoint.path)

    started_at = clock()
    last_run = checkpoint.load()
    threshold = compute_threshold(settings.mode, last_run, started_at, settings.lookback_months)
    logger.info(
        f"mode={settings.mode.value} last_run={last_run.isoformat() if last_run else '-'} "
        f"threshold={threshold.isoformat()} max_pages={settings.max_pages}"
    )

    sink = CsvResultSink(output_dir / storage.results_file, object_store)
    deduplicator = Deduplicator()
    if token is None and settings.deadline_s is not None:
        token = CancellationToken(settings.deadline_s)

    seen_store = _build_seen_store(config)
    if seen_store is not None and not await seen_store.connect():
        seen_store = None
    try:
        if settings.seed_dedup:
            await _seed_deduplicator(deduplicator, sink, seen_store)

        try:
            result = await _crawl(
                settings, config, threshold, deduplicator, listing_spec, detail_spec, source, token, clock, sleep
            )
        except BrowserUnavailableError as e:
            logger.error(f"run failed, checkpoint left untouched: {e}")
            raise

        report = result.report
        report.started_at = started_at
        records = sort_newest_first(result.records) if settings.sort_newest_first else result.records

        await sink.write(records)
        if seen_store is not None:
            await seen_store.add_keys(identity_key(record) for record in records)
    finally:
        if seen_store is not None:
            await seen_store.close()

    completed_at = clock()
    checkpoint.save(completed_at)
    if object_store is not None:
        await object_store.upload(checkpoint.path, storage.checkpoint_file)

    report.checkpoint_updated = True
    report.finished_at = completed_at
    logger.info(
        f"run complete: {report.records_emitted} record(s), stop={report.stop_reason.value}, "
        f"pages={report.pages_visited}"
    )
    return report
